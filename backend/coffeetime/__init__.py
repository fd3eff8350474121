"""
CoffeeTime AI Backend: Application Package Initializer
======================================================

What: Marks the `coffeetime` directory as a Python package.
Who:  Used by the import system, Alembic, pytest and uvicorn.

Architecture Note:
    The backend is the AI orchestration layer of the CoffeeTime brew log.

    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │     Task Service (Orchestration)    │  ← analyze-image, parse-voice, generate-image
    ├─────────────────────────────────────┤
    │  Resolver · Prompts · Extraction    │  ← pure logic, no I/O
    ├─────────────────────────────────────┤
    │  LLM / Image Dispatchers + Adapters │  ← one HTTP call per request
    ├─────────────────────────────────────┤
    │     AI Settings Store (Database)    │  ← async SQLAlchemy sessions
    └─────────────────────────────────────┘
"""

__version__ = "1.0.0"
