from fastapi import APIRouter

from bizhub.api.v1 import access_control, permissions

api_router = APIRouter()

api_router.include_router(access_control.router)
api_router.include_router(permissions.router)
