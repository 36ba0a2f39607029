"""Runtime settings read from the environment."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .scheduling import DEFAULT_HORIZON_DAYS

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _flag(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in _TRUE_VALUES


@dataclass(slots=True)
class PlannerSettings:
    """Deployment settings; planners tune the rest through ``PlanningOptions``."""

    database_path: str = "line_planner.sqlite3"
    horizon_days: int = DEFAULT_HORIZON_DAYS
    allow_overbooking: bool = False
    log_level: str = "INFO"
    seed_demo_data: bool = False

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "PlannerSettings":
        env = os.environ if environ is None else environ
        defaults = cls()
        horizon_text = env.get("LINE_PLANNER_HORIZON_DAYS")
        try:
            horizon = int(horizon_text) if horizon_text else defaults.horizon_days
        except ValueError:
            raise ValueError(
                f"LINE_PLANNER_HORIZON_DAYS must be an integer, got {horizon_text!r}"
            ) from None
        if horizon <= 0:
            raise ValueError("LINE_PLANNER_HORIZON_DAYS must be positive")
        return cls(
            database_path=env.get("LINE_PLANNER_DATABASE", defaults.database_path),
            horizon_days=horizon,
            allow_overbooking=_flag(env.get("LINE_PLANNER_ALLOW_OVERBOOKING")),
            log_level=env.get("LINE_PLANNER_LOG_LEVEL", defaults.log_level).upper(),
            seed_demo_data=_flag(env.get("LINE_PLANNER_SEED_DEMO")),
        )


def configure_logging(settings: PlannerSettings) -> None:
    """Set up root logging for scripts and the web app; libraries never call this."""

    level = logging.getLevelName(settings.log_level)
    if not isinstance(level, int):
        level = logging.INFO
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger("line_planner").setLevel(level)


__all__ = ["PlannerSettings", "configure_logging", "LOG_FORMAT"]
