"""Application settings resolved from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional


_ENV_PREFIX = "MEETING_SCHEDULER_"
PROJECT_ROOT = Path(__file__).resolve().parents[2]


def _env(name: str, default: str) -> str:
    return os.getenv(f"{_ENV_PREFIX}{name}", default)


def _env_optional_int(name: str) -> Optional[int]:
    raw = os.getenv(f"{_ENV_PREFIX}{name}")
    if raw is None or not raw.strip():
        return None
    return int(raw)


def _env_optional_float(name: str) -> Optional[float]:
    raw = os.getenv(f"{_ENV_PREFIX}{name}")
    if raw is None or not raw.strip():
        return None
    return float(raw)


@dataclass(frozen=True)
class Settings:
    app_name: str
    app_version: str
    log_level: str
    database_path: Path
    http_host: str
    http_port: int

    # Evolutionary search defaults.
    search_generations: int
    search_population_size: int
    search_tournament_size: int
    search_crossover_rate: float
    search_mutation_rate: float
    search_mutation_permutations: int
    search_hall_of_fame_size: int
    search_stagnation_limit: int
    search_evaluation_workers: int
    search_random_seed: Optional[int]
    search_time_budget_seconds: Optional[float]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Build settings once per process; tests derive variants with `replace`."""
    return Settings(
        app_name=_env("APP_NAME", "Meeting Scheduler"),
        app_version=_env("APP_VERSION", "1.0.0"),
        log_level=_env("LOG_LEVEL", "INFO"),
        database_path=Path(
            _env("DATABASE_PATH", str(PROJECT_ROOT / "data" / "calendars.db"))
        ),
        http_host=_env("HTTP_HOST", "127.0.0.1"),
        http_port=int(_env("HTTP_PORT", "8000")),
        search_generations=int(_env("GENERATIONS", "500")),
        search_population_size=int(_env("POPULATION_SIZE", "30")),
        search_tournament_size=int(_env("TOURNAMENT_SIZE", "3")),
        search_crossover_rate=float(_env("CROSSOVER_RATE", "0.7")),
        search_mutation_rate=float(_env("MUTATION_RATE", "0.5")),
        search_mutation_permutations=int(_env("MUTATION_PERMUTATIONS", "1")),
        search_hall_of_fame_size=int(_env("HALL_OF_FAME_SIZE", "1")),
        search_stagnation_limit=int(_env("STAGNATION_LIMIT", "0")),
        search_evaluation_workers=int(
            _env("EVALUATION_WORKERS", str(os.cpu_count() or 1))
        ),
        search_random_seed=_env_optional_int("RANDOM_SEED"),
        search_time_budget_seconds=_env_optional_float("TIME_BUDGET_SECONDS"),
    )
