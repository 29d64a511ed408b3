"""Environment-driven settings, validated once at import.

Invalid values fail fast with a ValueError naming the variable, so a
misconfigured deployment never starts half-working.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Literal

AppEnv = Literal["dev", "test", "prod"]
LogLevel = Literal["debug", "info", "warning", "error"]

_APP_ENVS = ("dev", "test", "prod")
_LOG_LEVELS = ("debug", "info", "warning", "error")
_BOOLEANS = {
    "1": True,
    "true": True,
    "yes": True,
    "on": True,
    "0": False,
    "false": False,
    "no": False,
    "off": False,
}


def _env(name: str, default: str = "") -> str:
    return os.environ.get(name, default).strip()


def _choice(name: str, raw: str, allowed: tuple[str, ...]) -> str:
    value = raw.lower()
    if value not in allowed:
        raise ValueError(f"{name} must be {'|'.join(allowed)} (got {value!r})")
    return value


def _parse_bool(name: str, raw: str) -> bool:
    try:
        return _BOOLEANS[raw.lower()]
    except KeyError:
        raise ValueError(f"{name} must be a boolean (got {raw!r})") from None


@dataclass(frozen=True)
class Settings:
    app_env: AppEnv
    log_level: LogLevel
    log_json: bool
    port: int
    database_url: str | None
    redis_url: str | None
    # PEM public key of the identity provider; None means the dev key pair.
    jwt_public_key: str | None = None
    # Frontend origin; accept links point at {app_base_url}/invite/{token}.
    app_base_url: str = "http://localhost:3000"

    @property
    def is_dev(self) -> bool:
        return self.app_env == "dev"

    @property
    def is_test(self) -> bool:
        return self.app_env == "test"

    @property
    def is_prod(self) -> bool:
        return self.app_env == "prod"


def load_settings() -> Settings:
    port_raw = _env("PORT", "8000")
    try:
        port = int(port_raw)
    except ValueError:
        raise ValueError(f"PORT must be an integer (got {port_raw!r})") from None

    app_base_url = _env("APP_BASE_URL", "http://localhost:3000").rstrip("/")
    if not app_base_url.startswith(("http://", "https://")):
        raise ValueError(
            f"APP_BASE_URL must start with http:// or https:// (got {app_base_url!r})"
        )

    return Settings(  # type: ignore[arg-type]
        app_env=_choice("APP_ENV", _env("APP_ENV", "dev"), _APP_ENVS),
        log_level=_choice("LOG_LEVEL", _env("LOG_LEVEL", "info"), _LOG_LEVELS),
        log_json=_parse_bool("LOG_JSON", _env("LOG_JSON", "false")),
        port=port,
        database_url=_env("DATABASE_URL") or None,
        redis_url=_env("REDIS_URL") or None,
        # PEM keys arrive through env files with literal "\n" sequences.
        jwt_public_key=_env("JWT_PUBLIC_KEY").replace("\\n", "\n") or None,
        app_base_url=app_base_url,
    )


SETTINGS = load_settings()
