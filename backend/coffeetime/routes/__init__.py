"""
CoffeeTime AI Backend: API Routes Package
=========================================

Route Inventory:
    - ai.py:        POST /api/ai/analyze-image
                    POST /api/ai/parse-voice
                    POST /api/ai/generate-image
                    GET  /api/ai/models
    - settings.py:  /api/users/{user_id}/ai-settings (GET, PATCH, key and model updates)
    - health.py:    GET  /health

Routes stay thin: extract the request data, call a service, return its
typed result. Business rules live in services/.
"""
