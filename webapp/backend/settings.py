"""Runtime settings read from the environment at start-up."""
import os

from rota.models import EngineConfig


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}")


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


LOG_LEVEL = os.environ.get("ROTA_LOG_LEVEL", "INFO").upper()


def load_engine_config() -> EngineConfig:
    return EngineConfig(
        workload_window_days=_env_int("ROTA_WORKLOAD_WINDOW_DAYS", 30),
        max_bulk_leave_days=_env_int("ROTA_MAX_BULK_LEAVE_DAYS", 60),
        oncall_horizon_days=_env_int("ROTA_ONCALL_HORIZON_DAYS", 90),
        rest_blocks_eligibility=_env_bool("ROTA_REST_BLOCKS_ELIGIBILITY", False),
    )


ENGINE_CONFIG = load_engine_config()
