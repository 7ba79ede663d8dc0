"""OpenAPI customization.

Adds the ``X-API-Key`` security scheme and applies it only to admin
operations (admission checks and health stay public), plus tag metadata.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

TAGS_METADATA = [
    {
        "name": "Admission",
        "description": "Admit/deny checks and quota lookups against named policies.",
    },
    {
        "name": "Admin",
        "description": "Administrative overrides such as clearing a caller's counters.",
    },
    {
        "name": "Health",
        "description": "Liveness checks.",
    },
]


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation to add tags and admin security."""

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        schema = original_openapi()

        security_schemes = schema.setdefault("components", {}).setdefault("securitySchemes", {})
        security_schemes.setdefault(
            "AdminApiKey",
            {
                "type": "apiKey",
                "in": "header",
                "name": "X-API-Key",
                "description": "Admin API key (APP_ADMIN_API_KEYS).",
            },
        )

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        tags.extend(t for t in TAGS_METADATA if t["name"] not in existing_tag_names)

        for methods in schema.get("paths", {}).values():
            for operation in methods.values():
                if isinstance(operation, dict) and "Admin" in operation.get("tags", []):
                    operation["security"] = [{"AdminApiKey": []}]

        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
