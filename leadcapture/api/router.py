"""
API router - aggregates all route modules.
"""
from fastapi import APIRouter
from leadcapture.api.chat import router as chat_router
from leadcapture.api.health import router as health_router

api_router = APIRouter()
api_router.include_router(chat_router)
api_router.include_router(health_router)
