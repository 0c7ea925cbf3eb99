"""
Chat Core API Routes

FastAPI route handlers for the chat engine.
"""
from .health import router as health_router
from .chats import router as chats_router

__all__ = [
    'health_router',
    'chats_router',
]
