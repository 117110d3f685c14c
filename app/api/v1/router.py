"""API v1 router aggregator."""

from fastapi import APIRouter

from app.api.v1.autopilot.routes import router as autopilot_router
from app.api.v1.calendar.routes import router as calendar_router
from app.api.v1.keywords.routes import router as keywords_router

api_router = APIRouter()

api_router.include_router(autopilot_router, prefix="/autopilot", tags=["Autopilot"])
api_router.include_router(keywords_router, prefix="/keywords", tags=["Keywords"])
api_router.include_router(calendar_router, prefix="/calendar", tags=["Content Calendar"])
