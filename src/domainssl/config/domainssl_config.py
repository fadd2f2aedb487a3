"""domainssl configuration loader.

Lifecycle::

    # 1. The CLI (or a test) builds the config once, at startup
    config = DomainSslConfig(config_file="/etc/domainssl/config.yaml")

    # 2. The typed settings tree is passed into the container
    app = create_app(config)

Loading runs in a fixed order: read YAML, resolve ``${VAR}`` /
``${VAR:-default}`` references, validate against the bundled JSON
Schema, run cross-field checks, then materialise the frozen
:class:`DomainSslSettings`.  Nothing reads the environment afterwards.
"""

from __future__ import annotations

import base64
import binascii
import copy
import json
import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml
from jsonschema import Draft202012Validator

from domainssl.config.settings import DomainSslSettings, build_settings

_SCHEMA_PATH = Path(__file__).parent / "schema.json"

_ENV_RE = re.compile(
    r"^\$\{([^}:]+?)(?::-(.*))?\}$",
    re.DOTALL,
)

_AES_KEY_LENGTH = 32
_MIN_SECRET_LENGTH = 16

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Validation error collector
# ---------------------------------------------------------------------------


class ConfigValidationError(Exception):
    """Raised when schema or cross-field validation finds problems."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = errors
        body = "\n".join(f"  - {e}" for e in errors)
        super().__init__(f"Configuration validation failed:\n{body}")


# ---------------------------------------------------------------------------
# Environment variable resolution
# ---------------------------------------------------------------------------


def _resolve_value(value: str, path: str) -> str:
    """Replace ``${VAR}`` or ``${VAR:-default}`` with env var value."""
    match = _ENV_RE.match(value)
    if match is None:
        return value
    var_name = match.group(1)
    fallback = match.group(2)
    resolved = os.environ.get(var_name)
    if resolved is not None:
        return resolved
    if fallback is not None:
        return fallback
    raise ConfigValidationError(
        [
            f"Environment variable '${{{var_name}}}' referenced "
            f"at '{path}' is not set and has no default",
        ],
    )


def _resolve_env_vars(data: Any, path: str = "") -> None:  # noqa: ANN401
    """Walk *data* in-place and resolve ``${VAR}``/``${VAR:-default}`` strings."""
    if isinstance(data, dict):
        for key in data:
            child_path = f"{path}.{key}" if path else key
            if isinstance(data[key], str):
                data[key] = _resolve_value(data[key], child_path)
            elif isinstance(data[key], (dict, list)):
                _resolve_env_vars(data[key], child_path)
    elif isinstance(data, list):
        for idx, item in enumerate(data):
            child_path = f"{path}[{idx}]"
            if isinstance(item, str):
                data[idx] = _resolve_value(item, child_path)
            elif isinstance(item, (dict, list)):
                _resolve_env_vars(item, child_path)


# ---------------------------------------------------------------------------
# Config class
# ---------------------------------------------------------------------------


class DomainSslConfig:
    """Validated configuration with a typed settings tree.

    Parameters
    ----------
    config_file:
        Path to the YAML (or JSON) configuration file.
    data:
        Raw configuration mapping; used instead of *config_file* (tests).

    """

    def __init__(
        self,
        *,
        config_file: str | Path | None = None,
        data: dict[str, Any] | None = None,
    ) -> None:
        if (config_file is None) == (data is None):
            msg = "Exactly one of config_file or data is required"
            raise ValueError(msg)
        self.config_file = Path(config_file) if config_file is not None else None
        raw = self._read(self.config_file) if self.config_file is not None else copy.deepcopy(data)
        _resolve_env_vars(raw)
        self._data: dict[str, Any] = raw
        self._validate_schema()
        self.additional_checks()
        self._settings: DomainSslSettings = build_settings(self._data)

    @staticmethod
    def _read(path: Path) -> dict[str, Any]:
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigValidationError([f"Cannot read config file '{path}': {exc}"]) from exc
        try:
            loaded = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise ConfigValidationError([f"Config file '{path}' is not valid YAML: {exc}"]) from exc
        if loaded is None:
            return {}
        if not isinstance(loaded, dict):
            raise ConfigValidationError([f"Config file '{path}' must contain a mapping"])
        return loaded

    def _validate_schema(self) -> None:
        schema = json.loads(_SCHEMA_PATH.read_text(encoding="utf-8"))
        validator = Draft202012Validator(schema)
        errors = [
            f"{'.'.join(str(p) for p in err.absolute_path) or '(root)'}: {err.message}"
            for err in sorted(validator.iter_errors(self._data), key=lambda e: list(e.absolute_path))
        ]
        if errors:
            raise ConfigValidationError(errors)

    # -- typed access -------------------------------------------------------

    @property
    def settings(self) -> DomainSslSettings:
        """Fully-typed, frozen settings tree."""
        return self._settings

    @property
    def data(self) -> dict[str, Any]:
        return self._data

    def get(self, dotted: str, default: Any = None) -> Any:  # noqa: ANN401
        """Dynamic dot-path lookup into the raw data."""
        node: Any = self._data
        for part in dotted.split("."):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return node

    # -- cross-field validation ---------------------------------------------

    def additional_checks(self) -> None:
        """Semantic and cross-field validation, run after schema validation."""
        errors: list[str] = []

        encryption = self._data.get("encryption") or {}
        acme = self._data.get("acme") or {}
        webhook = self._data.get("webhook") or {}
        internal = self._data.get("internal_api") or {}

        # -- encryption --
        key = encryption.get("key") or ""
        if not key:
            errors.append("encryption.key is required (base64 of 32 random bytes)")
        else:
            try:
                raw = base64.b64decode(key, validate=True)
            except (binascii.Error, ValueError):
                errors.append("encryption.key is not valid base64")
            else:
                if len(raw) != _AES_KEY_LENGTH:
                    errors.append(
                        f"encryption.key must decode to {_AES_KEY_LENGTH} bytes (got {len(raw)})",
                    )

        # -- ACME --
        if not acme.get("sandbox") and not acme.get("email"):
            errors.append("acme.email is required unless acme.sandbox is true")
        if acme.get("staging") and acme.get("directory_url"):
            log.warning("acme.directory_url is set; acme.staging is ignored")

        # -- webhook --
        if bool(webhook.get("url")) != bool(webhook.get("secret")):
            errors.append("webhook.url and webhook.secret must be set together")
        if (webhook.get("url") or "").endswith("/webhook"):
            errors.append("webhook.url is the agent base URL; '/webhook' is appended")
        secret = webhook.get("secret") or ""
        if secret and len(secret) < _MIN_SECRET_LENGTH:
            errors.append(f"webhook.secret must be at least {_MIN_SECRET_LENGTH} characters")

        # -- internal API --
        internal_secret = internal.get("secret") or ""
        if internal_secret and len(internal_secret) < _MIN_SECRET_LENGTH:
            errors.append(
                f"internal_api.secret must be at least {_MIN_SECRET_LENGTH} characters",
            )

        if errors:
            raise ConfigValidationError(errors)
