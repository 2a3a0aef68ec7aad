from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, Response

from app.adapters.rate_limit.base import AbstractCounterStore
from app.core.auth import resolve_authenticated_subject, verify_api_key
from app.core.errors import AuthenticationAppError
from app.core.rate_limit import RequestGate, describe_window, get_request_gate, resolve_request_identity
from app.core.session import clear_session_cookie, get_session_id
from app.schemas.rate_limit import CleanupResponse, MigrationResponse, RateLimitStatus
from app.services.session_migration import SessionMigrationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["RateLimit"])


def get_migration_service(request: Request) -> SessionMigrationService:
    return request.app.state.migration_service


def get_counter_store(request: Request) -> AbstractCounterStore:
    return request.app.state.counter_store


def _require_subject(request: Request) -> str:
    subject_id = resolve_authenticated_subject(request)
    if not subject_id:
        raise AuthenticationAppError(
            code="authentication_required",
            message="This action requires a signed-in user",
        )
    return subject_id


@router.get("/rate-limit", response_model=RateLimitStatus)
async def get_rate_limit_status(
    request: Request,
    response: Response,
    gate: RequestGate = Depends(get_request_gate),
) -> RateLimitStatus:
    """Report the caller's remaining generations without consuming one."""

    resolved = resolve_request_identity(request, response)
    decision = await gate.peek(resolved.identity)
    window_seconds = gate.limits_for(decision.tier).window_seconds
    return RateLimitStatus(
        allowed=decision.allowed,
        remaining=decision.remaining,
        reset_at=decision.reset_epoch_seconds,
        tier=decision.tier.value,
        limit=decision.limit,
        window_seconds=int(window_seconds),
        window=describe_window(window_seconds),
    )


@router.post("/session/migrate", response_model=MigrationResponse)
async def migrate_session(
    request: Request,
    response: Response,
    service: SessionMigrationService = Depends(get_migration_service),
) -> MigrationResponse:
    """Carry the anonymous session's usage over to the signed-in subject.

    Called once after sign-in. The session cookie is cleared when usage was
    moved, since the subject's own window now governs the caller.
    """
    subject_id = _require_subject(request)
    session_id = get_session_id(request)
    if not session_id:
        return MigrationResponse(migrated=False, message="No anonymous session to migrate")

    outcome = await service.migrate(session_id, subject_id)
    if outcome.migrated:
        clear_session_cookie(response)
    return MigrationResponse(migrated=outcome.migrated, message=outcome.message)


@router.post("/session/sign-out", response_model=MigrationResponse)
async def sign_out(
    request: Request,
    service: SessionMigrationService = Depends(get_migration_service),
) -> MigrationResponse:
    subject_id = _require_subject(request)
    service.sign_out(subject_id)
    return MigrationResponse(migrated=False, message="Signed out")


@router.post(
    "/rate-limit/cleanup",
    response_model=CleanupResponse,
    dependencies=[Depends(verify_api_key)],
)
async def cleanup_expired_windows(
    store: AbstractCounterStore = Depends(get_counter_store),
) -> CleanupResponse:
    """Delete windows that ended more than the retention period ago.

    Meant for a scheduled job; requires X-API-Key.
    """
    deleted = await store.cleanup_expired_records()
    logger.info("rate_limit.cleanup", extra={"deleted": deleted})
    return CleanupResponse(deleted=deleted)
