"""
API routes for the investment analyzer.
"""

from fastapi import APIRouter

from rei_analyzer.api import calculations

router = APIRouter()

# Include sub-routers
router.include_router(calculations.router, prefix="/calculate", tags=["calculations"])
