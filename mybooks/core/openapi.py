"""OpenAPI customization.

Adds the admin key security scheme (header ``X-Admin-Key``) to the admin
operations and tag metadata, keeping documentation concerns out of the app
factory.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

ADMIN_SCHEME = "AdminKeyAuth"

TAGS_METADATA = [
    {
        "name": "Admin",
        "description": "Rate limiter statistics, per-client status and resets.",
    },
    {
        "name": "Health",
        "description": "Liveness checks.",
    },
]


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation to document admin authentication.

    Only ``/api/admin/`` operations are marked as requiring the admin key.
    """

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        schema = original_openapi()

        components = schema.setdefault("components", {})
        security_schemes = components.setdefault("securitySchemes", {})
        security_schemes.setdefault(
            ADMIN_SCHEME,
            {
                "type": "apiKey",
                "in": "header",
                "name": "X-Admin-Key",
                "description": "Administrative key for the rate limit endpoints.",
            },
        )

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        for tag in TAGS_METADATA:
            if tag["name"] not in existing_tag_names:
                tags.append(tag)

        for path, methods in schema.get("paths", {}).items():
            if not path.startswith("/api/admin/"):
                continue
            for method_obj in methods.values():
                if isinstance(method_obj, dict):
                    method_obj["security"] = [{ADMIN_SCHEME: []}]

        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
