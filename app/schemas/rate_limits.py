"""Pydantic schemas for rate limit status responses."""

from __future__ import annotations

from typing import List

from pydantic import BaseModel, Field


class PolicyStatus(BaseModel):
    """Configuration and live counters of one rate limit policy."""

    name: str = Field(..., description="Policy name (e.g. 'posts.create').")
    window_seconds: float = Field(
        ..., description="Window length before a client's count resets."
    )
    ceiling: int = Field(
        ..., description="Maximum admitted requests per client per window."
    )
    capacity: int = Field(
        ..., description="Maximum distinct clients tracked before LRU eviction."
    )
    tracked_keys: int = Field(
        ..., description="Client keys currently held (may include expired ones not yet read)."
    )
    evictions: int = Field(..., description="Keys dropped to stay within capacity.")
    expirations: int = Field(..., description="Keys dropped because their window elapsed.")
    fail_open: bool = Field(
        ..., description="Whether requests are admitted when the limiter fails."
    )


class RateLimitStatusResponse(BaseModel):
    """All configured rate limit policies."""

    enabled: bool = Field(..., description="Whether limits are enforced at all.")
    policies: List[PolicyStatus] = Field(default_factory=list)
