"""InnoSistemas API Router - aggregates all routes."""

from fastapi import APIRouter

from innosistemas.api import auth, health, users

api_router = APIRouter()

api_router.include_router(health.router)
api_router.include_router(auth.router)
api_router.include_router(users.router)
