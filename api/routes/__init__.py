"""
API Routes Package

This module consolidates the payment API routes.
"""

from fastapi import APIRouter

from . import payments

# Create main router
router = APIRouter()

router.include_router(payments.router, tags=["payments"])

# Export for use in main application
__all__ = ["router"]
