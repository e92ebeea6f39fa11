"""Lock key conventions.

Keys follow ``lock:<namespace>:<identifier>``::

    lock:token-refresh:<user_id>
    lock:google-sheets:<destination_id>
    lock:escrow:<escrow_id>
    lock:bid-selection:<project_id>
    lock:global                     (non-parameterized critical sections)

Keys must never contain control characters; they end up verbatim in the
key-value store and in log lines.
"""

from __future__ import annotations

import re

from lockstep.core.errors import ValidationError

LOCK_PREFIX = "lock"

# C0 controls (includes \t, \n, NUL) and DEL
_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")


def validate_key(key: str) -> str:
    """Return ``key`` unchanged if it is a usable lock key.

    Raises:
        ValidationError: if the key is empty or contains control characters
    """
    if not isinstance(key, str) or not key:
        raise ValidationError("Lock key must be a non-empty string", field="key", value=key)
    if _CONTROL_CHARS.search(key):
        raise ValidationError(
            "Lock key must not contain control characters", field="key", value=key
        )
    return key


class LockKeys:
    """Builders for the well-known lock namespaces."""

    GLOBAL = f"{LOCK_PREFIX}:global"

    prefix = LOCK_PREFIX

    @classmethod
    def build(cls, namespace: str, identifier: str) -> str:
        if not namespace or not identifier:
            raise ValidationError(
                "Lock namespace and identifier must be non-empty",
                field="identifier",
                value=identifier,
            )
        return validate_key(f"{cls.prefix}:{namespace}:{identifier}")

    @classmethod
    def token_refresh(cls, user_id: str) -> str:
        return cls.build("token-refresh", user_id)

    @classmethod
    def sheets_sync(cls, destination_id: str) -> str:
        return cls.build("google-sheets", destination_id)

    @classmethod
    def escrow(cls, escrow_id: str) -> str:
        return cls.build("escrow", escrow_id)

    @classmethod
    def bid_selection(cls, project_id: str) -> str:
        return cls.build("bid-selection", project_id)


__all__ = ["LOCK_PREFIX", "LockKeys", "validate_key"]
