"""
PalmAgent HTTP routes — POST /api/palm/validate

Checks that an uploaded palm photo is usable before the quiz moves past the
palm-upload step. The photo is never stored.

app.state.palm_validator is set in main.py lifespan.
"""
import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from astroline.agents.palm_agent.schemas import PalmValidationRequest
from astroline.agents.palm_agent.validator import PalmServiceUnavailable, unavailable_result

router = APIRouter(prefix="/api/palm", tags=["palm_agent"])
logger = logging.getLogger(__name__)


@router.post("/validate")
async def validate_palm(body: PalmValidationRequest, request: Request) -> JSONResponse:
    """
    Response: {is_valid, confidence, feedback, details{...}, suggestions, service_unavailable}
    503 with the same body shape when no vision model is configured.
    """
    validator = request.app.state.palm_validator
    try:
        result = await validator.validate(body.image, body.language)
    except PalmServiceUnavailable:
        logger.warning("Palm validation requested but no vision model is configured")
        return JSONResponse(status_code=503, content=unavailable_result(body.language).model_dump())
    return JSONResponse(status_code=200, content=result.model_dump())
