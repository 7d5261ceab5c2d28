"""Aggregate all API routers."""

from fastapi import APIRouter
from app.api.v1.health import router as limits_router
from app.api.v1.jobs import router as jobs_router
from app.api.v1.tools import router as tools_router

api_router = APIRouter(prefix="/api")
api_router.include_router(limits_router, tags=["limits"])
api_router.include_router(jobs_router, tags=["jobs"])
api_router.include_router(tools_router, tags=["tools"])
