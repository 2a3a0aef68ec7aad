"""OpenAPI customization utilities.

Enriches the generated schema with:
- Tags metadata
- An API Key security scheme (``X-API-Key``) on the operations that need it

Generation and status endpoints are public, so security is opt-in per path
rather than global.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

from app.core.auth import API_KEY_HEADER

# Paths whose callers vouch for a signed-in subject or act as operators
API_KEY_PATHS = (
    "/api/rate-limit/cleanup",
    "/api/session/migrate",
    "/api/session/sign-out",
)


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation to add tags and security.

    - Injects components.securitySchemes for API Key auth
    - Marks the operations in ``API_KEY_PATHS`` as requiring it
    - Adds tags metadata if not present
    """

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        if app.openapi_schema:
            return app.openapi_schema

        schema = original_openapi()

        components = schema.setdefault("components", {})
        security_schemes = components.setdefault("securitySchemes", {})
        security_schemes.setdefault(
            "ApiKeyAuth",
            {
                "type": "apiKey",
                "in": "header",
                "name": API_KEY_HEADER,
                "description": (
                    "Trusted callers (the auth proxy or operators) provide their API key "
                    "via the X-API-Key header."
                ),
            },
        )

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        desired_tags = [
            {
                "name": "Zines",
                "description": "Zine generation, rate limited per tier.",
            },
            {
                "name": "RateLimit",
                "description": "Usage status, session migration and maintenance.",
            },
            {
                "name": "Health",
                "description": "Liveness checks.",
            },
        ]
        for tag in desired_tags:
            if tag["name"] not in existing_tag_names:
                tags.append(tag)

        paths = schema.get("paths", {})
        for path, methods in paths.items():
            if path not in API_KEY_PATHS:
                continue
            for method_obj in methods.values():
                if isinstance(method_obj, dict):
                    method_obj["security"] = [{"ApiKeyAuth": []}]

        app.openapi_schema = schema
        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
