"""
CoffeeTime AI Backend: Middleware Package
=========================================

Middleware Chain (execution order):
    Request → [Request ID] → [Logging] → [GZip] → [CORS] → Route Handler

    Responses travel back through the same chain in reverse, so the access
    log sees the final status and the request id header is set last.
"""
