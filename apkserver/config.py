"""Configuration settings for the APK server."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from common.constants import (
    DEFAULT_APK_DIR,
    DEFAULT_APK_FILE,
    DEFAULT_FORWARDED_ALLOW_IPS,
    DEFAULT_HOST,
    DEFAULT_PORT,
    HEADERS_TIMEOUT,
    KEEP_ALIVE_TIMEOUT,
    PIECE_SIZE_BYTES,
)
from apkserver.exceptions import ConfigurationError


def _read_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from None
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {value}")
    return value


def _read_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class ServerConfig:
    """
    Process-wide server settings, built once at the entry point.

    The target file is fixed at deploy time: it is read from the environment
    at startup and is not changeable through the HTTP interface.

    With trust_proxy set, X-Forwarded-* headers are honoured only from the
    peers listed in forwarded_allow_ips (comma-separated addresses, or "*"
    for any peer). Point it at the fronting proxy's address.
    """

    apk_dir: Path = DEFAULT_APK_DIR
    apk_file: str = DEFAULT_APK_FILE
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    piece_size: int = PIECE_SIZE_BYTES
    keep_alive_timeout: int = KEEP_ALIVE_TIMEOUT
    # Informational only: uvicorn has no request-header deadline to apply it to.
    headers_timeout: int = HEADERS_TIMEOUT
    trust_proxy: bool = True
    forwarded_allow_ips: str = DEFAULT_FORWARDED_ALLOW_IPS

    @property
    def apk_path(self) -> Path:
        return self.apk_dir / self.apk_file

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "ServerConfig":
        """
        Build configuration from environment variables.

        Args:
            env: Mapping to read from. Defaults to os.environ

        Returns:
            ServerConfig instance

        Raises:
            ConfigurationError: If a numeric setting is not a positive integer
        """
        if env is None:
            env = os.environ

        apk_file = env.get("APK_FILE") or DEFAULT_APK_FILE
        if "/" in apk_file or "\\" in apk_file:
            raise ConfigurationError(f"APK_FILE must be a bare file name, got {apk_file!r}")

        return cls(
            apk_dir=Path(env.get("APK_DIR") or DEFAULT_APK_DIR),
            apk_file=apk_file,
            host=env.get("APK_HOST") or DEFAULT_HOST,
            port=_read_int(env, "PORT", DEFAULT_PORT),
            piece_size=_read_int(env, "APK_PIECE_SIZE", PIECE_SIZE_BYTES),
            keep_alive_timeout=_read_int(env, "APK_KEEP_ALIVE_TIMEOUT", KEEP_ALIVE_TIMEOUT),
            headers_timeout=_read_int(env, "APK_HEADERS_TIMEOUT", HEADERS_TIMEOUT),
            trust_proxy=_read_bool(env, "APK_TRUST_PROXY", True),
            forwarded_allow_ips=env.get("APK_FORWARDED_ALLOW_IPS") or DEFAULT_FORWARDED_ALLOW_IPS,
        )
