"""OpenAPI customization utilities.

Adds tag descriptions and documents the 429 response shared by every
rate limited operation, keeping documentation concerns out of the app
factory.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

_RATE_LIMITED_RESPONSE = {
    "description": "Rate limit exceeded for this client.",
    "headers": {
        "Retry-After": {
            "description": "Seconds until the client's window resets.",
            "schema": {"type": "integer"},
        },
        "X-RateLimit-Limit": {
            "description": "Maximum requests per window.",
            "schema": {"type": "integer"},
        },
        "X-RateLimit-Remaining": {
            "description": "Requests left in the current window.",
            "schema": {"type": "integer"},
        },
        "X-RateLimit-Reset": {
            "description": "UNIX time when the window resets.",
            "schema": {"type": "integer"},
        },
    },
    "content": {
        "application/json": {
            "example": {
                "error": {
                    "code": "rate_limit_exceeded",
                    "message": "Rate limit exceeded. Try again later.",
                    "request_id": "3f0c9a52-8a8e-4a55-9d7e-0d3a6b1f9c21",
                    "details": {
                        "policy": "default",
                        "limit": 100,
                        "remaining": 0,
                        "reset_at": 1767225600,
                        "retry_after": 42,
                    },
                }
            }
        }
    },
}


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation.

    - Registers a reusable ``RateLimited`` (429) response component
    - References it from every operation except the health endpoint
    - Adds tags metadata if not present
    """

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        if app.openapi_schema:
            return app.openapi_schema

        schema = original_openapi()

        components = schema.setdefault("components", {})
        responses = components.setdefault("responses", {})
        responses.setdefault("RateLimited", _RATE_LIMITED_RESPONSE)

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        desired_tags = [
            {
                "name": "Rate Limits",
                "description": "Inspect per-endpoint rate limit policies.",
            },
            {
                "name": "Health",
                "description": "Liveness checks. Not rate limited.",
            },
        ]
        for tag in desired_tags:
            if tag["name"] not in existing_tag_names:
                tags.append(tag)

        for path, methods in schema.get("paths", {}).items():
            if path.endswith("/health"):
                continue
            for method_obj in methods.values():
                if isinstance(method_obj, dict):
                    method_obj.setdefault("responses", {}).setdefault(
                        "429", {"$ref": "#/components/responses/RateLimited"}
                    )

        app.openapi_schema = schema
        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
