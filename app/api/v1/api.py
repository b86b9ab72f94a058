from fastapi import APIRouter
from app.api.v1.endpoints import delivery_notes

api_router = APIRouter()

api_router.include_router(delivery_notes.router, prefix="/deliverynote", tags=["delivery notes"])
