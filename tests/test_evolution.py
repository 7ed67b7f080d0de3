from __future__ import annotations

import random
import threading
import time

import pytest

from meeting_scheduler.domain.constraints import SearchConfig
from meeting_scheduler.services.evolution_service import (
    Evaluation,
    EvolutionEngine,
    HallOfFame,
    Individual,
    TournamentSelection,
    cycle_crossover,
    permute_mutation,
    random_permutation,
)


def _config(**overrides) -> SearchConfig:
    defaults = {
        "generations": 100,
        "population_size": 30,
        "tournament_size": 3,
        "crossover_rate": 0.7,
        "mutation_rate": 0.5,
        "mutation_permutations": 1,
        "hall_of_fame_size": 1,
        "stagnation_limit": 0,
        "evaluation_workers": 1,
        "random_seed": 7,
        "time_budget_seconds": None,
    }
    defaults.update(overrides)
    return SearchConfig(**defaults)


def _misplaced(genome: tuple[int, ...]) -> Evaluation:
    return Evaluation(fitness=float(sum(1 for index, value in enumerate(genome) if index != value)))


def _permutation_engine(config: SearchConfig, evaluator=_misplaced, **kwargs) -> EvolutionEngine:
    size = 5
    return EvolutionEngine(
        config,
        initializer=lambda rng: tuple(random_permutation(size, rng)),
        evaluator=evaluator,
        crossover=lambda a, b, rng: tuple(map(tuple, cycle_crossover(a, b))),
        mutation=lambda genome, rng: tuple(permute_mutation(genome, 1, rng)),
        **kwargs,
    )


def test_cycle_crossover_exchanges_alternate_cycles():
    parent_a = [1, 2, 3, 4, 5, 6, 7, 8]
    parent_b = [8, 5, 2, 1, 3, 6, 4, 7]

    child_a, child_b = cycle_crossover(parent_a, parent_b)

    assert child_a == [1, 5, 2, 4, 3, 6, 7, 8]
    assert child_b == [8, 2, 3, 1, 5, 6, 4, 7]


def test_cycle_crossover_children_are_permutations_of_parent_values():
    rng = random.Random(99)
    for _ in range(25):
        parent_a = random_permutation(10, rng)
        parent_b = random_permutation(10, rng)

        child_a, child_b = cycle_crossover(parent_a, parent_b)

        assert sorted(child_a) == list(range(10))
        assert sorted(child_b) == list(range(10))
        for index in range(10):
            assert child_a[index] in (parent_a[index], parent_b[index])
            assert {child_a[index], child_b[index]} == {parent_a[index], parent_b[index]}


def test_cycle_crossover_rejects_mismatched_parents():
    with pytest.raises(ValueError):
        cycle_crossover([0, 1, 2], [0, 1])
    with pytest.raises(ValueError):
        cycle_crossover([0, 1, 2], [0, 1, 3])


def test_permute_mutation_swaps_exactly_one_pair():
    genes = list(range(10))

    mutated = permute_mutation(genes, 1, random.Random(3))

    assert sorted(mutated) == genes
    assert sum(1 for before, after in zip(genes, mutated) if before != after) == 2
    assert genes == list(range(10))


def test_permute_mutation_leaves_short_or_zero_requests_alone():
    assert permute_mutation([4], 3, random.Random(1)) == [4]
    assert permute_mutation([1, 2, 3], 0, random.Random(1)) == [1, 2, 3]


def test_tournament_selection_prefers_fitter_individuals():
    population = [Individual((index,), Evaluation(float(index))) for index in range(5)]
    selection = TournamentSelection(contestants=5)

    chosen = selection.select(population, 3, random.Random(0))

    assert [item.genome for item in chosen] == [(0,), (0,), (0,)]


def test_hall_of_fame_keeps_best_distinct_members():
    hall_of_fame: HallOfFame[tuple[int, ...]] = HallOfFame(size=2)

    assert hall_of_fame.offer([Individual((1, 0), Evaluation(5.0))])
    assert hall_of_fame.offer(
        [
            Individual((0, 1), Evaluation(2.0)),
            Individual((0, 1), Evaluation(2.0)),
            Individual((2, 2), Evaluation(9.0)),
        ]
    )
    assert not hall_of_fame.offer([Individual((3, 3), Evaluation(2.0))])

    assert [member.genome for member in hall_of_fame.members] == [(0, 1), (3, 3)]
    assert hall_of_fame.best.fitness == 2.0


def test_engine_finds_sorted_permutation():
    outcome = _permutation_engine(_config()).run()

    assert outcome.best.genome == (0, 1, 2, 3, 4)
    assert outcome.best.fitness == 0.0
    assert outcome.generations_run == 100
    assert not outcome.cancelled


def test_engine_is_reproducible_with_seed():
    first = _permutation_engine(_config(generations=10)).run()
    second = _permutation_engine(_config(generations=10)).run()

    assert first.best.genome == second.best.genome
    assert first.best.fitness == second.best.fitness


def test_zero_generations_returns_best_of_initial_population():
    outcome = _permutation_engine(_config(generations=0)).run()

    assert outcome.generations_run == 0
    assert outcome.best is not None


def test_generation_callback_receives_stats():
    seen = []
    outcome = _permutation_engine(_config(generations=5), on_generation=seen.append).run()

    assert [stats.generation for stats in seen] == [1, 2, 3, 4, 5]
    assert all(stats.best_fitness <= stats.generation_best_fitness for stats in seen)
    assert all(stats.generation_best_fitness <= stats.mean_fitness for stats in seen)
    assert seen[-1].best_fitness == outcome.best.fitness


def test_cancel_event_set_before_run_returns_initial_best():
    cancel_event = threading.Event()
    cancel_event.set()

    outcome = _permutation_engine(_config()).run(cancel_event)

    assert outcome.cancelled
    assert outcome.generations_run == 0
    assert outcome.best is not None


def test_cancel_event_is_checked_at_generation_boundaries():
    cancel_event = threading.Event()

    def stop_after_third(stats) -> None:
        if stats.generation == 3:
            cancel_event.set()

    outcome = _permutation_engine(_config(), on_generation=stop_after_third).run(cancel_event)

    assert outcome.cancelled
    assert outcome.generations_run == 3


def test_time_budget_cancels_run():
    def slow(genome):
        time.sleep(0.001)
        return _misplaced(genome)

    outcome = _permutation_engine(
        _config(time_budget_seconds=0.0001, population_size=4, tournament_size=2),
        evaluator=slow,
    ).run()

    assert outcome.cancelled
    assert outcome.generations_run == 0


def test_stagnation_limit_stops_early():
    outcome = _permutation_engine(
        _config(stagnation_limit=5),
        evaluator=lambda genome: Evaluation(1.0),
    ).run()

    assert outcome.stopped_early
    assert outcome.generations_run == 5


def test_parallel_evaluation_matches_inline_evaluation():
    inline = _permutation_engine(_config(generations=15)).run()
    parallel = _permutation_engine(_config(generations=15, evaluation_workers=4)).run()

    assert parallel.best.genome == inline.best.genome
    assert parallel.best.fitness == inline.best.fitness


def test_parallel_evaluation_failure_propagates():
    def explode(genome):
        if genome[0] == 0:
            raise RuntimeError("evaluation exploded")
        return _misplaced(genome)

    engine = _permutation_engine(_config(evaluation_workers=4), evaluator=explode)

    with pytest.raises(RuntimeError, match="exploded"):
        engine.run()


def test_engine_rejects_invalid_config():
    with pytest.raises(ValueError):
        _permutation_engine(_config(population_size=1, tournament_size=1))
