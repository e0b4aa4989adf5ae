from fastapi import APIRouter
from waitlist.api.v1.endpoints import admin, contact, waitlist

api_router = APIRouter()

api_router.include_router(waitlist.router)
api_router.include_router(contact.router)
api_router.include_router(admin.router)
