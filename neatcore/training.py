"""Generational evolution loop driving the population with an external fitness."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from random import Random

from loguru import logger

from .config import NEATConfig
from .genome import Genome, GenomeLike
from .innovations import InnovationTracker
from .organism import Organism
from .population import Population
from .reporters import EventLogger

FitnessFunction = Callable[[GenomeLike], float]


@dataclass(slots=True)
class EvolutionResult:
    """Outcome of a finished evolution run."""

    best_genome: GenomeLike
    best_fitness: float
    generations: int
    solved: bool
    population: Population


def _evaluate(
    organisms: list[Organism],
    fitness_fn: FitnessFunction,
) -> Organism:
    best: Organism | None = None
    for organism in organisms:
        organism.fitness = float(fitness_fn(organism.genome))
        organism.original_fitness = organism.fitness
        if best is None or organism.fitness > best.fitness:
            best = organism
    if best is None:
        msg = "Population has no organisms to evaluate."
        raise ValueError(msg)
    return best


def run_evolution(
    config: NEATConfig,
    fitness_fn: FitnessFunction,
    *,
    generations: int | None = None,
    events: EventLogger | None = None,
    seed_genome: GenomeLike | None = None,
) -> EvolutionResult:
    """Evolve a population until the fitness threshold or the generation limit.

    Args:
        config: NEAT parameters; `seed` makes the run reproducible.
        fitness_fn: Maps a genome to a non-negative fitness score.
        generations: Overrides `config.max_generations` when given.
        events: Optional run-level event log.
        seed_genome: Starting topology; defaults to sensors fully linked to
            outputs.
    """
    rng = Random(config.seed)
    tracker = InnovationTracker()
    if seed_genome is None:
        seed_genome = Genome.initial(0, config.num_inputs, config.num_outputs, tracker)
    population = Population.spawn(seed_genome, config, rng, innovations=tracker)

    limit = generations if generations is not None else config.max_generations
    best_genome: GenomeLike = seed_genome
    best_fitness = float("-inf")
    solved = False
    generation = 0

    for generation in range(1, limit + 1):
        champion = _evaluate(population.organisms, fitness_fn)
        if champion.fitness > best_fitness:
            best_fitness = champion.fitness
            best_genome = champion.genome
            if events is not None:
                events.log(
                    f"New champion at generation {generation} (fitness={best_fitness:.3f})."
                )

        logger.info(
            "Generation {}: best={:.3f} species={}",
            generation,
            champion.fitness,
            len(population.species),
        )
        if events is not None:
            events.log(
                f"Generation {generation}: best={champion.fitness:.3f} "
                f"species={len(population.species)} "
                f"organisms={len(population.organisms)}"
            )

        if champion.fitness >= config.fitness_threshold:
            champion.is_winner = True
            solved = True
            if events is not None:
                events.log("Fitness threshold reached; stopping.")
            break

        if generation < limit:
            population.epoch(generation + 1, config, rng)

    return EvolutionResult(
        best_genome=best_genome,
        best_fitness=best_fitness,
        generations=generation,
        solved=solved,
        population=population,
    )


__all__ = ["EvolutionResult", "FitnessFunction", "run_evolution"]
