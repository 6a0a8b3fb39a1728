"""API v1 router aggregator."""

from fastapi import APIRouter

from app.api.v1.optimizer.routes import router as optimizer_router

api_router = APIRouter()

api_router.include_router(optimizer_router, prefix="/optimizer", tags=["Optimizer"])
