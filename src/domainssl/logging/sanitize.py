"""Sensitive data sanitization for log output.

:func:`sanitize_for_logs` redacts PEM bodies (private keys, certificates,
CSRs) and :class:`~domainssl.core.secret.Secret` values from data
structures before they are written to a log record.  BEGIN/END markers
are kept so the kind of object is still visible.
"""

from __future__ import annotations

import re
from typing import Any

from domainssl.core.secret import Secret

REDACTED = "[REDACTED]"

_PEM_BODY_RE = re.compile(
    r"(-----BEGIN [A-Z0-9 ]+-----)"
    r"([\s\S]*?)"
    r"(-----END [A-Z0-9 ]+-----)",
)

# Keys whose values are never logged, whatever they contain
_SECRET_KEYS = frozenset(
    {"private_key", "privateKey", "private_key_enc", "secret", "key", "challenge_key_auth"}
)


def sanitize_pem(pem: str) -> str:
    """Replace the base64 body of PEM blocks with ``[REDACTED]``."""

    def _redact(m) -> str:
        return f"{m.group(1)}\n{REDACTED}\n{m.group(3)}"

    return _PEM_BODY_RE.sub(_redact, pem)


def sanitize_for_logs(data: Any) -> Any:
    """Recursively sanitize sensitive material in *data*."""
    if isinstance(data, Secret):
        return repr(data)

    if isinstance(data, dict):
        return {
            k: REDACTED if k in _SECRET_KEYS and v else sanitize_for_logs(v)
            for k, v in data.items()
        }

    if isinstance(data, (list, tuple)):
        return type(data)(sanitize_for_logs(item) for item in data)

    if isinstance(data, str):
        if "-----BEGIN " in data:
            return sanitize_pem(data)
        return data

    return data
