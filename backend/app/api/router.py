"""
Main API router.
"""

from fastapi import APIRouter
from app.api import corrections, rules, transactions

api_router = APIRouter()

api_router.include_router(corrections.router)
api_router.include_router(rules.router)
api_router.include_router(transactions.router)
