from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional
from urllib.parse import quote_plus


_DATABASE_URL_ENV = "TEMPERATURE_DATABASE_URL"
_DB_HOST_ENV = "TEMPERATURE_DB_HOST"
_DB_USER_ENV = "TEMPERATURE_DB_USER"
_DB_PASSWORD_ENV = "TEMPERATURE_DB_PASSWORD"
_DB_NAME_ENV = "TEMPERATURE_DB_NAME"
_DB_SSLMODE_ENV = "TEMPERATURE_DB_SSLMODE"
_MQTT_ENABLED_ENV = "MQTT_ENABLED"
_MQTT_HOST_ENV = "MQTT_BROKER_HOST"
_MQTT_PORT_ENV = "MQTT_BROKER_PORT"
_MQTT_USERNAME_ENV = "MQTT_USERNAME"
_MQTT_PASSWORD_ENV = "MQTT_PASSWORD"
_MQTT_TOPIC_PREFIX_ENV = "MQTT_TOPIC_PREFIX"
_WINDOW_HOURS_ENV = "QUERY_DEFAULT_WINDOW_HOURS"
_LOG_LEVEL_ENV = "LOG_LEVEL"


@dataclass(frozen=True)
class Settings:
    database_url: str
    db_host: str
    db_name: str
    mqtt_enabled: bool
    mqtt_host: str
    mqtt_port: int
    mqtt_username: Optional[str]
    mqtt_password: Optional[str]
    mqtt_topic_prefix: str
    default_window_hours: int
    log_level: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_positive_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip().lower()
    if not candidate:
        return default
    return candidate in {"1", "true", "yes", "on"}


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


def build_database_url(
    host: str,
    user: str,
    password: str,
    name: str,
    sslmode: str,
) -> str:
    credentials = quote_plus(user)
    if password:
        credentials = f"{credentials}:{quote_plus(password)}"
    return f"postgresql+psycopg2://{credentials}@{host}/{name}?sslmode={sslmode}"


@lru_cache
def get_settings() -> Settings:
    db_host = _read_str_env(_DB_HOST_ENV, "localhost")
    db_name = _read_str_env(_DB_NAME_ENV, "temperature")
    database_url = _read_optional_env(_DATABASE_URL_ENV, None) or build_database_url(
        host=db_host,
        user=_read_str_env(_DB_USER_ENV, "postgres"),
        password=os.getenv(_DB_PASSWORD_ENV, ""),
        name=db_name,
        sslmode=_read_str_env(_DB_SSLMODE_ENV, "require"),
    )
    return Settings(
        database_url=database_url,
        db_host=db_host,
        db_name=db_name,
        mqtt_enabled=_read_bool(_MQTT_ENABLED_ENV, False),
        mqtt_host=_read_str_env(_MQTT_HOST_ENV, "localhost"),
        mqtt_port=_read_positive_int(_MQTT_PORT_ENV, 1883),
        mqtt_username=_read_optional_env(_MQTT_USERNAME_ENV, None),
        mqtt_password=_read_optional_env(_MQTT_PASSWORD_ENV, None),
        mqtt_topic_prefix=_read_str_env(_MQTT_TOPIC_PREFIX_ENV, ""),
        default_window_hours=_read_positive_int(_WINDOW_HOURS_ENV, 24),
        log_level=_read_log_level("INFO"),
    )
