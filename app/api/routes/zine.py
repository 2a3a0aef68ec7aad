from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from app.core.config import settings
from app.core.rate_limit import RequestGate, enforce_rate_limit, get_request_gate
from app.schemas.rate_limit import ThrottledResponse
from app.schemas.zine import GenerateZineRequest, ZineResponse
from app.services.zine_service import ZineService
from app.utils.subject_validation import validate_and_sanitize_subject

router = APIRouter(prefix="/api", tags=["Zines"])


def get_zine_service(request: Request) -> ZineService:
    return request.app.state.zine_service


async def get_validated_subject(payload: GenerateZineRequest) -> str:
    """Pre-check the subject before any budget is spent."""

    return validate_and_sanitize_subject(
        payload.subject,
        min_chars=settings.app.min_subject_chars,
        max_chars=settings.app.max_subject_chars,
    )


async def admit_generation(
    request: Request,
    response: Response,
    subject: str = Depends(get_validated_subject),
    gate: RequestGate = Depends(get_request_gate),
) -> str:
    """Run the rate limit gate once the subject is known to be valid.

    FastAPI skips this dependency entirely when the body or the subject is
    rejected, so malformed requests never consume a generation.
    """
    await enforce_rate_limit(request, response, gate)
    return subject


@router.post(
    "/generate-zine",
    response_model=ZineResponse,
    responses={
        400: {"description": "Subject rejected by the pre-check"},
        429: {"model": ThrottledResponse, "description": "Generation limit reached"},
        502: {"description": "The language model failed or returned an unusable zine"},
    },
)
async def generate_zine(
    subject: str = Depends(admit_generation),
    service: ZineService = Depends(get_zine_service),
) -> ZineResponse:
    """Generate a zine about a subject.

    Each successful call consumes one generation from the caller's tier:
    2 per hour for anonymous visitors, 10 per day once signed in. Current
    standing is echoed in the X-RateLimit-* response headers.

    Raises:
        ValidationAppError: 400 if the subject fails the pre-check.
        RateLimitExceededError: 429 when the window is exhausted.
        LLMAppError: 502 if the model call fails.
    """
    return await service.generate(subject)
