"""Domain-level validation rules for the evolutionary search."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class SearchConfig:
    generations: int
    population_size: int
    tournament_size: int
    crossover_rate: float
    mutation_rate: float
    mutation_permutations: int
    hall_of_fame_size: int
    stagnation_limit: int
    evaluation_workers: int
    random_seed: Optional[int] = None
    time_budget_seconds: Optional[float] = None


def validate_search_config(config: SearchConfig) -> None:
    if config.generations < 0:
        raise ValueError("generations must be >= 0")
    if config.population_size < 2:
        raise ValueError("population_size must be >= 2")
    if not 1 <= config.tournament_size <= config.population_size:
        raise ValueError("tournament_size must be between 1 and population_size")
    if not 0.0 <= config.crossover_rate <= 1.0:
        raise ValueError("crossover_rate must be between 0 and 1")
    if not 0.0 <= config.mutation_rate <= 1.0:
        raise ValueError("mutation_rate must be between 0 and 1")
    if config.mutation_permutations < 0:
        raise ValueError("mutation_permutations must be >= 0")
    if config.hall_of_fame_size <= 0:
        raise ValueError("hall_of_fame_size must be > 0")
    if config.stagnation_limit < 0:
        raise ValueError("stagnation_limit must be >= 0")
    if config.evaluation_workers <= 0:
        raise ValueError("evaluation_workers must be > 0")
    if config.random_seed is not None and config.random_seed < 0:
        raise ValueError("random_seed must be >= 0")
    if config.time_budget_seconds is not None and config.time_budget_seconds <= 0:
        raise ValueError("time_budget_seconds must be > 0")
