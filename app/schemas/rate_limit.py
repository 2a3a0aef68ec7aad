"""Pydantic schemas for rate limit status and session endpoints."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class RateLimitStatus(BaseModel):
    """Caller's current standing; reading it never consumes budget."""

    model_config = ConfigDict(populate_by_name=True)

    allowed: bool = Field(..., description="Whether the next generation would be allowed.")
    remaining: int = Field(..., ge=0, description="Generations left in the current window.")
    reset_at: int = Field(..., alias="resetAt", description="UNIX seconds when the window ends.")
    tier: Literal["anonymous", "authenticated"]
    limit: int = Field(..., ge=1, description="Generations allowed per window for the tier.")
    window_seconds: int = Field(..., alias="windowSeconds", description="Window length in seconds.")
    window: str = Field(..., description='Human wording for the window, e.g. "hour" or "day".')


class ThrottledResponse(BaseModel):
    """Body returned with HTTP 429."""

    model_config = ConfigDict(populate_by_name=True)

    error: str
    retry_after: int = Field(..., alias="retryAfter", description="Seconds until the window resets.")
    tier: Literal["anonymous", "authenticated"]
    upgrade_available: bool = Field(
        ...,
        alias="upgradeAvailable",
        description="True when signing in would raise the limit.",
    )


class MigrationResponse(BaseModel):
    migrated: bool
    message: str


class CleanupResponse(BaseModel):
    deleted: int = Field(..., ge=0, description="Expired windows removed from the store.")
