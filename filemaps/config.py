"""File Maps backend configuration."""
import os
import sys
from pathlib import Path


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def default_config_dir() -> Path:
    """Return the OS-appropriate directory holding the maps registry."""
    if sys.platform.startswith("win"):
        local = os.getenv("LocalAppData")
        if local:
            return Path(local) / "FileMaps"
        return Path(os.getenv("AppData", "")) / "FileMaps"
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / "FileMaps"
    xdg = os.getenv("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "filemaps"
    return Path.home() / ".config" / "filemaps"


# Registry location
CONFIG_DIR = Path(os.getenv("FILEMAPS_CONFIG_DIR") or default_config_dir())
MAPS_FILE_NAME = "maps.json"

# Scan merge: new resources are scattered in [-SCAN_SPREAD/2, SCAN_SPREAD/2] on x/y
SCAN_SPREAD = _env_float("FILEMAPS_SCAN_SPREAD", 1000.0)

# External file opener, e.g. "code --goto" or "gvim --remote-silent"
OPEN_COMMAND = os.getenv("FILEMAPS_OPEN_COMMAND", "")

# Observability
OTEL_ENABLED = _env_bool("FILEMAPS_OTEL_ENABLED", False)
OTEL_ENDPOINT = os.getenv("FILEMAPS_OTEL_ENDPOINT", "http://localhost:4318")
OTEL_SERVICE_NAME = os.getenv("FILEMAPS_OTEL_SERVICE_NAME", "filemaps-backend")

# Server settings
HOST = os.getenv("FILEMAPS_HOST", "127.0.0.1")
PORT = _env_int("FILEMAPS_PORT", 8338)

# CORS
FRONTEND_ORIGIN = os.getenv("FILEMAPS_FRONTEND_ORIGIN", "http://localhost:3000")
