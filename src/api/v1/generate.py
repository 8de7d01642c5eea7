"""One-shot code generation endpoint."""

import logging

from fastapi import APIRouter, Depends

from core.ratelimit import check_rate_limit
from schemas.api import ApiResponse
from schemas.codegen import GenerateRequest, GenerateResponse

from .deps import Generator


router = APIRouter(tags=["generate"])

logger = logging.getLogger(__name__)


@router.post(
    "/generate",
    response_model=ApiResponse[GenerateResponse],
    dependencies=[Depends(check_rate_limit)],
)
async def generate_code(
    payload: GenerateRequest, generator: Generator
) -> ApiResponse[GenerateResponse]:
    """Generate code for a prompt and return it in one response.

    Nothing is saved to history; use a conversation for that.
    Provider failures surface through the global error handler
    (``rate_limited`` as 429, provider outages as 503, other failures as 502).
    """
    result = await generator.generate(payload.prompt)
    logger.info(
        "One-shot generation finished (model=%s, has_code=%s)",
        result.model,
        bool(result.code),
    )
    return ApiResponse(
        success=True,
        data=GenerateResponse(
            code=result.code,
            language=result.language,
            explanation=result.explanation,
            model=result.model,
        ),
        message="Code generated",
    )
