"""
API v1 router initialization and setup.
"""
from fastapi import APIRouter
from .endpoints import ads, campaigns, payments

api_router = APIRouter()

api_router.include_router(
    ads.router,
    prefix="/ads",
    tags=["ads"]
)

api_router.include_router(
    campaigns.router,
    prefix="/campaigns",
    tags=["campaigns"]
)

api_router.include_router(
    payments.router,
    prefix="/payments",
    tags=["payments"]
)
