# config/secrets.py
"""
Deployment secrets loaded from a file kept outside the deployable unit.

The file is read exactly once when the application is created and the result
is an immutable ``SecretsConfig`` stored on the app. Secrets are never written
to the database or to application config.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

import yaml

SECRETS_FILE_ENV = "DOCRATE_SECRETS_FILE"
DEFAULT_ENVIRONMENT = "production"


class SecretsConfigError(RuntimeError):
    """Raised when the configured secrets file is missing or malformed."""


@dataclass(frozen=True)
class SecretsConfig:
    values: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    source: str | None = None

    def get(self, key: str, default: Any = None) -> Any:
        return self.values.get(key, default)

    def has(self, key: str) -> bool:
        return key in self.values

    @property
    def environment(self) -> str:
        return str(self.get("environment", DEFAULT_ENVIRONMENT))

    @property
    def is_staging(self) -> bool:
        return self.environment == "staging"


def _read_secrets_file(path: Path) -> Mapping[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise SecretsConfigError(f"Unable to read secrets file {path}: {exc}") from exc

    try:
        if path.suffix.lower() in {".yaml", ".yml"}:
            data = yaml.safe_load(text)
        else:
            data = json.loads(text)
    except (yaml.YAMLError, json.JSONDecodeError) as exc:
        raise SecretsConfigError(f"Secrets file {path} is not valid: {exc}") from exc

    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise SecretsConfigError("Secrets file must contain a JSON/YAML object.")
    return data


def load_secrets(path: str | os.PathLike | None = None, env: Mapping[str, str] | None = None) -> SecretsConfig:
    """
    Load the secrets file named by ``path`` or ``DOCRATE_SECRETS_FILE``.

    No configured file yields an empty config; a configured file that does
    not exist is an error.
    """
    env = os.environ if env is None else env
    configured = path if path is not None else env.get(SECRETS_FILE_ENV)
    if not configured:
        return SecretsConfig()

    secrets_path = Path(configured)
    if not secrets_path.exists():
        raise SecretsConfigError(f"Secrets file {secrets_path} does not exist.")
    data = _read_secrets_file(secrets_path)
    return SecretsConfig(values=MappingProxyType(dict(data)), source=str(secrets_path))
