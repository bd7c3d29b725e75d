"""Connection credentials and configuration loading helpers."""

from __future__ import annotations

import logging
import os
from pathlib import Path

import tomllib

from pydantic import BaseModel, ConfigDict, Field, SecretStr

CONFIG_FILE = Path.home() / ".config" / "pgstore" / "config.toml"
CONFIG_ENV_VAR = "PGSTORE_CONFIG"

LOG = logging.getLogger(__name__)


class Credentials(BaseModel):
    """Connection parameters handed to the driver when a session connects."""

    model_config = ConfigDict(frozen=True)

    host: str = "localhost"
    port: int = 5432
    user: str | None = None
    password: SecretStr | None = None
    database: str | None = None
    ssl: bool = False
    dsn: str | None = None
    connect_timeout: float = 5.0
    command_timeout: float | None = None

    @classmethod
    def from_dsn(cls, dsn: str, **overrides: object) -> Credentials:
        """Build credentials around an explicit connection string."""

        return cls(dsn=dsn, **overrides)

    def connect_kwargs(self) -> dict[str, object]:
        """Keyword arguments understood by ``asyncpg.connect``."""

        kwargs: dict[str, object] = {}
        if self.dsn:
            kwargs["dsn"] = self.dsn
        else:
            kwargs["host"] = self.host or "localhost"
            kwargs["port"] = self.port
            if self.user:
                kwargs["user"] = self.user
            if self.password is not None:
                kwargs["password"] = self.password.get_secret_value()
            if self.database:
                kwargs["database"] = self.database
            kwargs["ssl"] = "require" if self.ssl else "disable"
        kwargs["timeout"] = self.connect_timeout
        if self.command_timeout is not None:
            kwargs["command_timeout"] = self.command_timeout
        return kwargs

    def describe(self) -> str:
        """Short label safe for logs (never includes the password)."""

        if self.dsn:
            return "dsn"
        return f"{self.host}:{self.port}/{self.database or ''}"


class StoreConfig(BaseModel):
    """Shape of the configuration file."""

    credentials: Credentials = Field(default_factory=Credentials)
    log_level: str = "WARNING"

    def configure_logging(self) -> None:
        """Apply ``log_level`` to the package logger."""

        level = logging.getLevelName(self.log_level.upper())
        if not isinstance(level, int):
            LOG.warning("Ignoring unknown log level", extra={"log_level": self.log_level})
            return
        logging.getLogger("pgstore").setLevel(level)


def config_path() -> Path:
    """Config file location, honouring the ``PGSTORE_CONFIG`` override."""

    override = os.environ.get(CONFIG_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return CONFIG_FILE


def load_config(path: Path | None = None) -> StoreConfig:
    """Load configuration from disk; fall back to defaults if missing."""

    target = path or config_path()
    try:
        data = _read_config_file(target)
    except FileNotFoundError:
        return StoreConfig()
    except (tomllib.TOMLDecodeError, OSError):
        LOG.warning("Unreadable config file, using defaults", extra={"path": str(target)})
        return StoreConfig()

    return StoreConfig(
        credentials=Credentials(**data.get("credentials", {})),  # type: ignore[arg-type]
        log_level=data.get("log_level", StoreConfig.model_fields["log_level"].default),
    )


def save_config(config: StoreConfig, path: Path | None = None) -> Path:
    """Persist configuration to disk; returns the file written."""

    target = path or config_path()
    target.parent.mkdir(parents=True, exist_ok=True)
    credentials = config.credentials
    lines: list[str] = [f"log_level = {_toml_str(config.log_level)}", "", "[credentials]"]
    if credentials.dsn:
        lines.append(f"dsn = {_toml_str(credentials.dsn)}")
    lines.append(f"host = {_toml_str(credentials.host)}")
    lines.append(f"port = {credentials.port}")
    if credentials.user:
        lines.append(f"user = {_toml_str(credentials.user)}")
    if credentials.password is not None:
        lines.append(f"password = {_toml_str(credentials.password.get_secret_value())}")
    if credentials.database:
        lines.append(f"database = {_toml_str(credentials.database)}")
    lines.append(f"ssl = {str(credentials.ssl).lower()}")
    lines.append(f"connect_timeout = {credentials.connect_timeout}")
    if credentials.command_timeout is not None:
        lines.append(f"command_timeout = {credentials.command_timeout}")
    target.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return target


def _toml_str(value: str) -> str:
    """Render ``value`` as a TOML basic string."""

    escaped: list[str] = []
    for char in value:
        if char in ('"', "\\"):
            escaped.append("\\" + char)
        elif char < " " or char == "\x7f":
            escaped.append(f"\\u{ord(char):04x}")
        else:
            escaped.append(char)
    return '"' + "".join(escaped) + '"'


def _read_config_file(path: Path) -> dict[str, object]:
    with path.open("rb") as handle:
        raw = tomllib.load(handle)
    data: dict[str, object] = {}
    log_level = raw.get("log_level")
    if isinstance(log_level, str):
        data["log_level"] = log_level
    section = raw.get("credentials")
    if isinstance(section, dict):
        parsed: dict[str, object] = {}
        for key in ("host", "user", "password", "database", "dsn"):
            value = section.get(key)
            if isinstance(value, str):
                parsed[key] = value
        port = section.get("port")
        if isinstance(port, int):
            parsed["port"] = port
        ssl = section.get("ssl")
        if isinstance(ssl, bool):
            parsed["ssl"] = ssl
        for key in ("connect_timeout", "command_timeout"):
            value = section.get(key)
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                parsed[key] = float(value)
        data["credentials"] = parsed
    return data


__all__ = [
    "CONFIG_ENV_VAR",
    "CONFIG_FILE",
    "Credentials",
    "StoreConfig",
    "config_path",
    "load_config",
    "save_config",
]
