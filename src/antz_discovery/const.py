import os
from pathlib import Path

from antz_discovery import __version__

__all__ = [
    "ANTZ_AUTO_PAIR",
    "ANTZ_CONFIG_DIR",
    "ANTZ_DEBUG",
    "ANTZ_EPS_HEADING",
    "ANTZ_EPS_METERS",
    "ANTZ_LOG_FORMAT",
    "ANTZ_LOG_HUMAN_OUTPUT",
    "ANTZ_LOG_JSON_FILE",
    "ANTZ_LOG_NAME",
    "ANTZ_METRICS_PORT",
    "ANTZ_MQTT_URL",
    "ANTZ_PAIRED_STORE_PATH",
    "ANTZ_VERSION",
    "YES_ANSWER",
]

YES_ANSWER = ("true", "1", "yes", "y", "t", 1, "on", "o")
ANTZ_LOG_NAME: str = "antz_discovery"
ANTZ_VERSION: str = __version__

ANTZ_DEBUG = os.environ.get("ANTZ_DEBUG", "0").casefold() in YES_ANSWER
ANTZ_LOG_FORMAT: str = os.environ.get("ANTZ_LOG_FORMAT", "human").casefold()
_json_file = os.environ.get("ANTZ_LOG_JSON_FILE")
ANTZ_LOG_JSON_FILE: str | None = _json_file if _json_file else None
# stdout carries decoded events, so logs default to stderr
ANTZ_LOG_HUMAN_OUTPUT: str = os.environ.get("ANTZ_LOG_HUMAN_OUTPUT", "stderr")

_metrics_port = os.environ.get("ANTZ_METRICS_PORT", "0")
try:
    _metrics_port_value: int = int(_metrics_port) if _metrics_port else 0
except ValueError:
    _metrics_port_value = 0
ANTZ_METRICS_PORT: int = _metrics_port_value


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


ANTZ_EPS_METERS: float = _env_float("ANTZ_EPS_METERS", 0.0)
ANTZ_EPS_HEADING: float = _env_float("ANTZ_EPS_HEADING", 0.0)

_mqtt_url = os.environ.get("ANTZ_MQTT_URL")
ANTZ_MQTT_URL: str | None = _mqtt_url if _mqtt_url else None

ANTZ_AUTO_PAIR: bool = os.environ.get("ANTZ_AUTO_PAIR", "1").casefold() in YES_ANSWER

_xdg_config = os.environ.get("XDG_CONFIG_HOME")
ANTZ_CONFIG_DIR: Path = (Path(_xdg_config) if _xdg_config else Path.home() / ".config") / "antz"
_store_path = os.environ.get("ANTZ_PAIRED_STORE_PATH")
ANTZ_PAIRED_STORE_PATH: Path = Path(_store_path) if _store_path else ANTZ_CONFIG_DIR / "paired_channels.csv"
