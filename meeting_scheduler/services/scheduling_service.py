"""Scheduler facade: configure the search, run it, and return the winner."""

from __future__ import annotations

import random
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Sequence

from meeting_scheduler.domain.constraints import SearchConfig, validate_search_config
from meeting_scheduler.domain.models import ScheduledEvent, ScheduleRequest
from meeting_scheduler.services.evolution_service import (
    Evaluation,
    EvolutionEngine,
    GenerationCallback,
    cycle_crossover,
    permute_mutation,
    random_permutation,
)
from meeting_scheduler.services.placement_service import (
    MAX_PLACEMENT_ITERATIONS,
    ConstructedSchedule,
    Ordering,
)
from meeting_scheduler.utils.config import Settings, get_settings
from meeting_scheduler.utils.logger import get_logger


logger = get_logger(__name__)


class SchedulingValidationError(Exception):
    """Raised when scheduler construction inputs are invalid."""


@dataclass(frozen=True)
class SchedulingResult:
    events: list[ScheduledEvent]
    cost: float
    generations_run: int
    cancelled: bool
    stopped_early: bool


def _validate_requests(earliest: datetime, requests: Sequence[ScheduleRequest]) -> None:
    if not isinstance(earliest, datetime):
        raise SchedulingValidationError("earliest must be a datetime")
    pauses: dict[str, timedelta] = {}
    for index, request in enumerate(requests):
        if not isinstance(request, ScheduleRequest):
            raise SchedulingValidationError(f"requests[{index}] is not a ScheduleRequest")
        if request.duration <= timedelta(0):
            raise SchedulingValidationError(f"requests[{index}] duration must be > 0")
        attendee_ids = [attendee.attendee_id for attendee in request.attendees]
        if len(set(attendee_ids)) != len(attendee_ids):
            raise SchedulingValidationError(f"requests[{index}] lists an attendee more than once")
        for attendee in request.attendees:
            if attendee.preferred_pause < timedelta(0):
                raise SchedulingValidationError(
                    f"attendee '{attendee.attendee_id}' preferred_pause must be >= 0"
                )
            known_pause = pauses.setdefault(attendee.attendee_id, attendee.preferred_pause)
            if known_pause != attendee.preferred_pause:
                raise SchedulingValidationError(
                    f"attendee '{attendee.attendee_id}' has conflicting preferred_pause values"
                )


class MeetingScheduler:
    """Schedules a batch of meeting requests as early and as packed as possible."""

    def __init__(
        self,
        earliest: datetime,
        requests: Sequence[ScheduleRequest],
        *,
        settings: Optional[Settings] = None,
        generations: Optional[int] = None,
        random_seed: Optional[int] = None,
        evaluation_workers: Optional[int] = None,
        time_budget_seconds: Optional[float] = None,
        on_generation: Optional[GenerationCallback] = None,
        max_iterations: int = MAX_PLACEMENT_ITERATIONS,
    ) -> None:
        self._settings = settings or get_settings()
        _validate_requests(earliest, requests)
        self._earliest = earliest
        self._requests = tuple(requests)
        self._on_generation = on_generation
        self._max_iterations = max_iterations
        self._config = SearchConfig(
            generations=(
                generations
                if generations is not None
                else self._settings.search_generations
            ),
            population_size=self._settings.search_population_size,
            tournament_size=self._settings.search_tournament_size,
            crossover_rate=self._settings.search_crossover_rate,
            mutation_rate=self._settings.search_mutation_rate,
            mutation_permutations=self._settings.search_mutation_permutations,
            hall_of_fame_size=self._settings.search_hall_of_fame_size,
            stagnation_limit=self._settings.search_stagnation_limit,
            evaluation_workers=(
                evaluation_workers
                if evaluation_workers is not None
                else self._settings.search_evaluation_workers
            ),
            random_seed=(
                random_seed
                if random_seed is not None
                else self._settings.search_random_seed
            ),
            time_budget_seconds=(
                time_budget_seconds
                if time_budget_seconds is not None
                else self._settings.search_time_budget_seconds
            ),
        )
        try:
            validate_search_config(self._config)
        except ValueError as exc:
            raise SchedulingValidationError(str(exc)) from exc
        if max_iterations <= 0:
            raise SchedulingValidationError("max_iterations must be > 0")

    @property
    def config(self) -> SearchConfig:
        return self._config

    def run(self, cancel_event: Optional[threading.Event] = None) -> list[ScheduledEvent]:
        """Return the best schedule's events in placement order."""
        return self.run_detailed(cancel_event).events

    def run_detailed(self, cancel_event: Optional[threading.Event] = None) -> SchedulingResult:
        if not self._requests:
            logger.info("Scheduling skipped due to empty inputs | requests=0")
            return SchedulingResult(
                events=[],
                cost=0.0,
                generations_run=0,
                cancelled=False,
                stopped_early=False,
            )

        logger.info(
            "Scheduling started | requests=%s | earliest=%s | generations=%s",
            len(self._requests),
            self._earliest.isoformat(),
            self._config.generations,
        )
        engine: EvolutionEngine[Ordering] = EvolutionEngine(
            self._config,
            initializer=self._random_ordering,
            evaluator=self._evaluate,
            crossover=self._crossover,
            mutation=self._mutate,
            on_generation=self._on_generation,
        )
        outcome = engine.run(cancel_event)
        schedule: ConstructedSchedule = outcome.best.evaluation.payload
        logger.info(
            "Scheduling completed | cost=%.1f | events=%s | generations_run=%s | cancelled=%s",
            outcome.best.fitness,
            len(schedule.events),
            outcome.generations_run,
            outcome.cancelled,
        )
        return SchedulingResult(
            events=list(schedule.events),
            cost=outcome.best.fitness,
            generations_run=outcome.generations_run,
            cancelled=outcome.cancelled,
            stopped_early=outcome.stopped_early,
        )

    def _random_ordering(self, rng: random.Random) -> Ordering:
        return Ordering(
            earliest=self._earliest,
            requests=self._requests,
            order=tuple(random_permutation(len(self._requests), rng)),
            max_iterations=self._max_iterations,
        )

    @staticmethod
    def _evaluate(ordering: Ordering) -> Evaluation:
        schedule = ordering.schedule()
        return Evaluation(fitness=schedule.evaluate(), payload=schedule)

    @staticmethod
    def _crossover(
        first: Ordering,
        second: Ordering,
        rng: random.Random,
    ) -> tuple[Ordering, Ordering]:
        del rng
        child_a, child_b = cycle_crossover(first.order, second.order)
        return first.with_order(child_a), second.with_order(child_b)

    def _mutate(self, ordering: Ordering, rng: random.Random) -> Ordering:
        return ordering.with_order(
            permute_mutation(ordering.order, self._config.mutation_permutations, rng)
        )
