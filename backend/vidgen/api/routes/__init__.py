from fastapi import APIRouter

from vidgen.api.routes import admin, generation, health, me

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(me.router, prefix="/me", tags=["me"])
api_router.include_router(generation.router, prefix="/generation", tags=["generation"])
api_router.include_router(admin.router, tags=["admin"])
