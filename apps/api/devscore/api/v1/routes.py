from fastapi import APIRouter

from .assessment import router as assessment_router
from .pipeline import router as pipeline_router

router = APIRouter()

router.include_router(assessment_router)
router.include_router(pipeline_router)
