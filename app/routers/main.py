from fastapi import APIRouter

from app.routers.shared import shared_router

main_router = APIRouter()

# Routes are served directly under API_PREFIX
main_router.include_router(shared_router)
