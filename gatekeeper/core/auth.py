"""Admin API key authentication.

Administrative endpoints (quota reset) are guarded by a static list of API
keys from configuration. Admission checks themselves are public: they are
what protects the public endpoints in the first place.
"""

from __future__ import annotations

import hashlib
import logging
import secrets
from typing import Annotated

from fastapi import Header

from gatekeeper.core.config import settings
from gatekeeper.core.errors import AuthenticationAppError

logger = logging.getLogger(__name__)


def parse_api_keys(keys_string: str | None) -> set[str]:
    """Parse comma-separated API keys into a set.

    Examples:
        >>> sorted(parse_api_keys("key1, key2 ,key1"))
        ['key1', 'key2']
        >>> parse_api_keys(None)
        set()
    """
    if not keys_string:
        return set()
    return {key.strip() for key in keys_string.split(",") if key.strip()}


def _hash_key(key: str) -> str:
    return hashlib.sha256(key.encode()).hexdigest()[:16]


def validate_admin_key(provided_key: str | None) -> None:
    """Validate ``provided_key`` against the configured admin keys.

    Comparison is constant-time per configured key.

    Raises:
        AuthenticationAppError: If auth is required and the key is missing,
            unknown, or no keys are configured.
    """
    if not settings.app.admin_api_key_required:
        return

    valid_keys = parse_api_keys(settings.app.admin_api_keys)
    if not valid_keys:
        logger.error(
            "auth.failed",
            extra={"reason": "admin_api_keys_not_configured"},
        )
        raise AuthenticationAppError(
            code="admin_api_keys_not_configured",
            message="Admin authentication is enabled but no keys are configured",
            details={"hint": "Set APP_ADMIN_API_KEYS or disable with APP_ADMIN_API_KEY_REQUIRED=false"},
        )

    if not provided_key:
        logger.warning("auth.failed", extra={"reason": "missing_api_key"})
        raise AuthenticationAppError(
            code="missing_api_key",
            message="Missing API key. Provide X-API-Key header.",
        )

    matched = False
    for key in valid_keys:
        if secrets.compare_digest(provided_key.encode(), key.encode()):
            matched = True

    if not matched:
        logger.warning(
            "auth.failed",
            extra={"reason": "invalid_api_key", "api_key_hash": _hash_key(provided_key)},
        )
        raise AuthenticationAppError(
            code="invalid_api_key",
            message="Invalid API key",
        )

    logger.info("auth.success", extra={"api_key_hash": _hash_key(provided_key)})


async def require_admin_key(
    x_api_key: Annotated[str | None, Header(alias="X-API-Key")] = None,
) -> None:
    """FastAPI dependency guarding administrative routes.

    Usage:
        @router.delete("/admin/thing", dependencies=[Depends(require_admin_key)])
    """
    validate_admin_key(x_api_key)
