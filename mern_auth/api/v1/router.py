"""
API v1 Router
"""

from fastapi import APIRouter

from mern_auth.api.v1.endpoints import auth, health, users


def build_api_router(*, include_local_auth: bool) -> APIRouter:
    """Assemble the v1 routes; local register/login only exist under the local scheme"""
    api_router = APIRouter()

    if include_local_auth:
        api_router.include_router(
            auth.router,
            prefix="/auth",
            tags=["authentication"]
        )

    api_router.include_router(
        users.router,
        prefix="/user",
        tags=["users"]
    )

    api_router.include_router(
        health.router,
        prefix="/health",
        tags=["health"]
    )

    return api_router
