from __future__ import annotations

from fastapi import APIRouter

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check() -> dict:
    """Liveness check.

    Does not touch the counter store: a store outage degrades rate limiting
    to the in-process fallback but leaves the service able to serve.
    """

    return {"status": "ok"}
