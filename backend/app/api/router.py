"""
Main API router.
"""

from fastapi import APIRouter
from app.api import imports, links, transactions

api_router = APIRouter()

api_router.include_router(imports.router)
api_router.include_router(transactions.router)
api_router.include_router(links.router)
