"""
OpenAPI Schema Configuration

Adds service documentation, tags and the shared error envelope to the
generated schema.
"""

from typing import Any, Dict

from fastapi import FastAPI

from .error_codes import ERROR_STATUS_CODES


def customize_openapi(app: FastAPI) -> Dict[str, Any]:
    """
    Customize the OpenAPI schema.

    Call this in your FastAPI app:
        app.openapi = lambda: customize_openapi(app)
    """
    if app.openapi_schema:
        return app.openapi_schema

    from fastapi.openapi.utils import get_openapi

    codes = "\n".join(
        f"| `{code.value}` | {status} |" for code, status in ERROR_STATUS_CODES.items()
    )
    openapi_schema = get_openapi(
        title=app.title,
        version=app.version,
        description=f"""
# Notification Outbox API

Operator surface over the notification outbox: inspect records, retry
failed notifications and force-dispatch queued ones.

## Delivery failures

A failed delivery is not an HTTP error. Retry and dispatch return `200`
with `status: "failed"` and an `error` string such as
`sms: timeout after 5s; chat: webhook returned HTTP 500`.

## Errors

Every error uses the envelope `{{"error": {{"code", "message", "details", "trace_id", "timestamp"}}}}`.

| code | HTTP |
|---|---|
{codes}
""",
        routes=app.routes,
    )

    openapi_schema["tags"] = [
        {"name": "outbox", "description": "Outbox records, retry and dispatch"},
        {"name": "health", "description": "Liveness and readiness probes"},
    ]

    openapi_schema.setdefault("components", {}).setdefault("schemas", {})
    openapi_schema["components"]["schemas"]["ErrorEnvelope"] = {
        "type": "object",
        "properties": {
            "error": {
                "type": "object",
                "properties": {
                    "code": {"type": "string", "enum": [c.value for c in ERROR_STATUS_CODES]},
                    "message": {"type": "string"},
                    "details": {"type": "array", "nullable": True, "items": {"type": "object"}},
                    "trace_id": {"type": "string"},
                    "timestamp": {"type": "string", "format": "date-time"},
                },
                "required": ["code", "message", "trace_id"],
            }
        },
        "required": ["error"],
    }

    app.openapi_schema = openapi_schema
    return app.openapi_schema


def setup_openapi(app: FastAPI) -> None:
    """Install the customized OpenAPI schema on the app."""
    app.openapi = lambda: customize_openapi(app)
