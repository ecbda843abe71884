"""plancheck process configuration."""
import os
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

# Project root (one level up from plancheck/)
PROJECT_ROOT = Path(__file__).resolve().parent.parent

# Report history database
DB_PATH = os.getenv("PLANCHECK_DB_PATH", str(PROJECT_ROOT / "data" / "plancheck_history.db"))

# Optional YAML/JSON file with engine weight and heuristic overrides
ENGINE_CONFIG_PATH = os.getenv("PLANCHECK_ENGINE_CONFIG", "")

# Evaluation tuning
MAX_WORKERS = _env_int("PLANCHECK_MAX_WORKERS", 4)
CANDIDATE_TIMEOUT_SECONDS = _env_float("PLANCHECK_CANDIDATE_TIMEOUT_SECONDS", 0.0)
MAX_READ_BYTES = _env_int("PLANCHECK_MAX_READ_BYTES", 256 * 1024)
USE_GIT_DATES = _env_bool("PLANCHECK_USE_GIT_DATES", True)

# Planning corpus discovery (relative to the analyzed root)
PLAN_DIRS = [
    token.strip()
    for token in os.getenv("PLANCHECK_PLAN_DIRS", "docs,memory-bank,.").split(",")
    if token.strip()
]

# Observability
OTEL_ENABLED = _env_bool("PLANCHECK_OTEL_ENABLED", False)
OTEL_ENDPOINT = os.getenv("PLANCHECK_OTEL_ENDPOINT", "http://localhost:4318")
OTEL_SERVICE_NAME = os.getenv("PLANCHECK_OTEL_SERVICE_NAME", "plancheck")
PROM_PORT = _env_int("PLANCHECK_PROM_PORT", 0)

# Server settings
HOST = os.getenv("PLANCHECK_HOST", "127.0.0.1")
PORT = int(os.getenv("PLANCHECK_PORT", "8010"))
