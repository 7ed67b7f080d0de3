"""Generic evolutionary search over hashable genomes.

The engine minimizes an evaluator's fitness. It owns the generation loop,
parallel evaluation, and the hall of fame; genome-specific behaviour comes in
through the initializer, crossover, and mutation callables. Permutation
operators used by the meeting scheduler live at the bottom of this module.
"""

from __future__ import annotations

import random
import threading
import time
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from contextlib import nullcontext
from dataclasses import dataclass
from typing import (
    Any,
    Callable,
    Generic,
    Hashable,
    Iterable,
    Optional,
    Protocol,
    Sequence,
    TypeVar,
)

from meeting_scheduler.domain.constraints import SearchConfig, validate_search_config
from meeting_scheduler.utils.logger import get_logger


logger = get_logger(__name__)

G = TypeVar("G", bound=Hashable)
T = TypeVar("T")


@dataclass(frozen=True)
class Evaluation:
    """Fitness of one genome plus whatever the evaluator built to compute it."""

    fitness: float
    payload: Any = None


@dataclass(frozen=True)
class Individual(Generic[G]):
    genome: G
    evaluation: Evaluation

    @property
    def fitness(self) -> float:
        return self.evaluation.fitness


@dataclass(frozen=True)
class GenerationStats:
    generation: int
    best_fitness: float
    generation_best_fitness: float
    mean_fitness: float


@dataclass(frozen=True)
class SearchOutcome(Generic[G]):
    best: Individual[G]
    hall_of_fame: list[Individual[G]]
    generations_run: int
    cancelled: bool
    stopped_early: bool


Initializer = Callable[[random.Random], G]
Evaluator = Callable[[G], Evaluation]
Crossover = Callable[[G, G, random.Random], tuple[G, G]]
Mutation = Callable[[G, random.Random], G]
GenerationCallback = Callable[[GenerationStats], None]


class SelectionStrategy(Protocol):
    def select(
        self,
        population: Sequence[Individual[Any]],
        count: int,
        rng: random.Random,
    ) -> list[Individual[Any]]:
        ...


class TournamentSelection:
    """Pick each parent as the fittest of `contestants` random individuals."""

    def __init__(self, contestants: int = 3) -> None:
        if contestants <= 0:
            raise ValueError("contestants must be > 0")
        self.contestants = contestants

    def select(
        self,
        population: Sequence[Individual[Any]],
        count: int,
        rng: random.Random,
    ) -> list[Individual[Any]]:
        size = min(self.contestants, len(population))
        return [
            min(rng.sample(population, size), key=lambda item: item.fitness)
            for _ in range(count)
        ]


class HallOfFame(Generic[G]):
    """Best distinct individuals seen across the whole run, fittest first."""

    def __init__(self, size: int = 1) -> None:
        if size <= 0:
            raise ValueError("hall of fame size must be > 0")
        self._size = size
        self._members: list[Individual[G]] = []

    @property
    def members(self) -> list[Individual[G]]:
        return list(self._members)

    @property
    def best(self) -> Optional[Individual[G]]:
        return self._members[0] if self._members else None

    def offer(self, individuals: Iterable[Individual[G]]) -> bool:
        """Merge candidates in; return True when the best fitness improved."""
        previous_best = self.best.fitness if self._members else None
        known = {member.genome for member in self._members}
        for individual in individuals:
            if individual.genome in known:
                continue
            known.add(individual.genome)
            self._members.append(individual)
        # Stable sort keeps the earlier of two equally fit individuals first.
        self._members.sort(key=lambda item: item.fitness)
        del self._members[self._size:]
        return previous_best is None or self._members[0].fitness < previous_best


class EvolutionEngine(Generic[G]):
    """Generational genetic algorithm with tournament selection by default."""

    def __init__(
        self,
        config: SearchConfig,
        *,
        initializer: Initializer[G],
        evaluator: Evaluator[G],
        crossover: Crossover[G],
        mutation: Mutation[G],
        selection: Optional[SelectionStrategy] = None,
        on_generation: Optional[GenerationCallback] = None,
    ) -> None:
        validate_search_config(config)
        self._config = config
        self._initializer = initializer
        self._evaluator = evaluator
        self._crossover = crossover
        self._mutation = mutation
        self._selection = selection or TournamentSelection(config.tournament_size)
        self._on_generation = on_generation

    @property
    def config(self) -> SearchConfig:
        return self._config

    def run(self, cancel_event: Optional[threading.Event] = None) -> SearchOutcome[G]:
        config = self._config
        rng = random.Random(config.random_seed)
        deadline = (
            time.monotonic() + config.time_budget_seconds
            if config.time_budget_seconds is not None
            else None
        )
        hall_of_fame: HallOfFame[G] = HallOfFame(config.hall_of_fame_size)
        generations_run = 0
        stagnant = 0
        cancelled = False
        stopped_early = False

        logger.info(
            (
                "Evolution run started | population=%s | generations=%s | "
                "workers=%s | seed=%s"
            ),
            config.population_size,
            config.generations,
            config.evaluation_workers,
            config.random_seed,
        )
        executor_context = (
            ThreadPoolExecutor(
                max_workers=config.evaluation_workers,
                thread_name_prefix="evaluation",
            )
            if config.evaluation_workers > 1
            else nullcontext(None)
        )
        with executor_context as executor:
            population = self._evaluate(
                [self._initializer(rng) for _ in range(config.population_size)],
                executor,
            )
            hall_of_fame.offer(population)

            for generation in range(1, config.generations + 1):
                if self._interrupted(cancel_event, deadline):
                    cancelled = True
                    logger.info(
                        "Evolution run cancelled | generation=%s | best_fitness=%.3f",
                        generation,
                        hall_of_fame.best.fitness,
                    )
                    break

                population = self._evaluate(self._breed(population, rng), executor)
                improved = hall_of_fame.offer(population)
                generations_run = generation
                stagnant = 0 if improved else stagnant + 1
                self._report(generation, population, hall_of_fame)

                if config.stagnation_limit and stagnant >= config.stagnation_limit:
                    stopped_early = True
                    logger.info(
                        "Evolution run stopped early | generation=%s | stagnant_generations=%s",
                        generation,
                        stagnant,
                    )
                    break

        best = hall_of_fame.best
        logger.info(
            "Evolution run completed | generations_run=%s | best_fitness=%.3f | cancelled=%s",
            generations_run,
            best.fitness,
            cancelled,
        )
        return SearchOutcome(
            best=best,
            hall_of_fame=hall_of_fame.members,
            generations_run=generations_run,
            cancelled=cancelled,
            stopped_early=stopped_early,
        )

    @staticmethod
    def _interrupted(
        cancel_event: Optional[threading.Event],
        deadline: Optional[float],
    ) -> bool:
        if cancel_event is not None and cancel_event.is_set():
            return True
        return deadline is not None and time.monotonic() >= deadline

    def _breed(self, population: Sequence[Individual[G]], rng: random.Random) -> list[G]:
        config = self._config
        offspring: list[G] = []
        while len(offspring) < config.population_size:
            parent_a, parent_b = self._selection.select(population, 2, rng)
            child_a, child_b = parent_a.genome, parent_b.genome
            if rng.random() < config.crossover_rate:
                child_a, child_b = self._crossover(child_a, child_b, rng)
            for child in (child_a, child_b):
                if rng.random() < config.mutation_rate:
                    child = self._mutation(child, rng)
                offspring.append(child)
        return offspring[: config.population_size]

    def _evaluate(
        self,
        genomes: Sequence[G],
        executor: Optional[ThreadPoolExecutor],
    ) -> list[Individual[G]]:
        if executor is None:
            return [Individual(genome, self._evaluator(genome)) for genome in genomes]

        futures: list[Future[Evaluation]] = [
            executor.submit(self._evaluator, genome) for genome in genomes
        ]
        _, pending = wait(futures, return_when=FIRST_EXCEPTION)
        if pending:
            for future in pending:
                future.cancel()
            wait(futures)
        for future in futures:
            if not future.cancelled() and future.exception() is not None:
                raise future.exception()
        return [
            Individual(genome, future.result())
            for genome, future in zip(genomes, futures)
        ]

    def _report(
        self,
        generation: int,
        population: Sequence[Individual[G]],
        hall_of_fame: HallOfFame[G],
    ) -> None:
        fitness_values = [individual.fitness for individual in population]
        stats = GenerationStats(
            generation=generation,
            best_fitness=hall_of_fame.best.fitness,
            generation_best_fitness=min(fitness_values),
            mean_fitness=sum(fitness_values) / len(fitness_values),
        )
        logger.debug(
            "Generation evaluated | generation=%s | best=%.3f | generation_best=%.3f | mean=%.3f",
            stats.generation,
            stats.best_fitness,
            stats.generation_best_fitness,
            stats.mean_fitness,
        )
        if self._on_generation is not None:
            self._on_generation(stats)


def random_permutation(size: int, rng: random.Random) -> list[int]:
    order = list(range(size))
    rng.shuffle(order)
    return order


def cycle_crossover(
    parent_a: Sequence[T],
    parent_b: Sequence[T],
) -> tuple[list[T], list[T]]:
    """Cycle crossover (CX) for two permutations of the same elements.

    Positions are grouped into cycles shared by both parents. Even cycles keep
    each parent's values, odd cycles swap them, so both children remain
    permutations and every value keeps a position it held in one parent.
    """
    if len(parent_a) != len(parent_b):
        raise ValueError("parents must have the same length")
    position_in_a = {value: index for index, value in enumerate(parent_a)}
    if len(position_in_a) != len(parent_a) or set(parent_b) != set(position_in_a):
        raise ValueError("parents must be permutations of the same distinct elements")

    child_a = list(parent_a)
    child_b = list(parent_b)
    visited = [False] * len(parent_a)
    cycle_number = 0
    for start in range(len(parent_a)):
        if visited[start]:
            continue
        index = start
        while not visited[index]:
            visited[index] = True
            if cycle_number % 2 == 1:
                child_a[index] = parent_b[index]
                child_b[index] = parent_a[index]
            index = position_in_a[parent_b[index]]
        cycle_number += 1
    return child_a, child_b


def permute_mutation(
    genes: Sequence[T],
    permutations: int,
    rng: random.Random,
) -> list[T]:
    """Swap `permutations` random pairs of distinct positions."""
    mutated = list(genes)
    if len(mutated) < 2:
        return mutated
    for _ in range(permutations):
        first, second = rng.sample(range(len(mutated)), 2)
        mutated[first], mutated[second] = mutated[second], mutated[first]
    return mutated
