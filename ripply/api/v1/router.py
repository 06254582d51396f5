from fastapi import APIRouter

from ripply.api.v1.feed import router as feed_router

api_router = APIRouter()
api_router.include_router(feed_router)
