from __future__ import annotations

from fastapi import APIRouter

from api.routes import allocation


api_router = APIRouter()
api_router.include_router(allocation.router, prefix="/allocation", tags=["allocation"])
