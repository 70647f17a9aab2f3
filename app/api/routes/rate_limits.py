from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from app.core.rate_limit import get_registry, rate_limit
from app.schemas.rate_limits import PolicyStatus, RateLimitStatusResponse

router = APIRouter(tags=["Rate Limits"])


@router.get(
    "/rate-limits",
    response_model=RateLimitStatusResponse,
    dependencies=[Depends(rate_limit("default"))],
)
async def list_rate_limits(request: Request) -> RateLimitStatusResponse:
    """Report configured policies and how many client keys each is tracking.

    Client keys themselves are never returned.

    Returns:
        RateLimitStatusResponse: One entry per policy, sorted by name.
    """
    registry = get_registry(request)
    stats = registry.stats()

    policies = [
        PolicyStatus(
            name=name,
            window_seconds=item["window_seconds"],
            ceiling=item["limit"],
            capacity=item["capacity"],
            tracked_keys=item["entries"],
            evictions=item["evictions"],
            expirations=item["expirations"],
            fail_open=item["fail_open"],
        )
        for name, item in sorted(stats.items())
    ]

    return RateLimitStatusResponse(
        enabled=registry.enabled,
        policies=policies,
    )
