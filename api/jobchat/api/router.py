from fastapi import APIRouter

from jobchat.api.routes import health, messages

api_router = APIRouter()
api_router.include_router(health.router, tags=["health"])
api_router.include_router(messages.router, prefix="/messages", tags=["messages"])
