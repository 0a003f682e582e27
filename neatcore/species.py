"""Species: fitness sharing, aging and offspring accounting for NEAT."""

from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass, field

from loguru import logger

from .config import NEATConfig
from .errors import ConsistencyError
from .organism import Organism

# Species up to this age receive the `age_significance` boost.
YOUNG_AGE = 10
STAGNATION_PENALTY = 0.01
MIN_FITNESS = 0.0001


@dataclass(slots=True, eq=False)
class Species:
    """An ordered group of genetically compatible organisms.

    After `adjust_fitness` the organisms are sorted best first, and
    reproduction relies on index 0 being the species champion.
    """

    id: int
    age: int = 1
    avg_fitness: float = 0.0
    max_fitness: float = 0.0
    max_fitness_ever: float = 0.0
    expected_offspring: int = 0
    is_novel: bool = False
    age_of_last_improvement: int = 0
    organisms: list[Organism] = field(default_factory=list)

    @property
    def size(self) -> int:
        return len(self.organisms)

    def add_organism(self, organism: Organism) -> None:
        self.organisms.append(organism)

    def remove_organism(self, organism: Organism) -> None:
        """Remove a member; a missing member means corrupted bookkeeping."""
        remaining = [member for member in self.organisms if member is not organism]
        if len(remaining) != len(self.organisms) - 1:
            msg = (
                f"Attempt to remove organism {organism.genome.id} "
                f"which is not a member of species {self.id}"
            )
            raise ConsistencyError(msg)
        self.organisms = remaining

    def first_organism(self) -> Organism | None:
        return self.organisms[0] if self.organisms else None

    def adjust_fitness(self, config: NEATConfig) -> None:
        """Apply stagnation penalty, young boost and fitness sharing, then rank.

        Marks the champion (index 0) and flags everything past the survival
        threshold for elimination.
        """
        if not self.organisms:
            return

        age_debt = (self.age - self.age_of_last_improvement + 1) - config.drop_off_age
        if age_debt == 0:
            age_debt = 1

        size = len(self.organisms)
        for organism in self.organisms:
            organism.original_fitness = organism.fitness
            if age_debt >= 1:
                organism.fitness *= STAGNATION_PENALTY
            if self.age <= YOUNG_AGE:
                organism.fitness *= config.age_significance
            if organism.fitness < 0.0:
                organism.fitness = MIN_FITNESS
            organism.fitness /= size

        # list.sort is stable, equal fitness keeps insertion order.
        self.organisms.sort(key=lambda member: member.fitness, reverse=True)

        champion = self.organisms[0]
        if champion.original_fitness > self.max_fitness_ever:
            self.age_of_last_improvement = self.age
            self.max_fitness_ever = champion.original_fitness

        num_parents = int(math.floor(config.survival_thresh * size + 1.0))
        champion.is_champion = True
        for organism in self.organisms[num_parents:]:
            organism.to_eliminate = True

        logger.debug(
            "Species {} adjusted: size={} age_debt={} parents={}",
            self.id,
            size,
            age_debt,
            min(num_parents, size),
        )

    def compute_avg_fitness(self) -> float:
        total = sum(organism.fitness for organism in self.organisms)
        self.avg_fitness = total / len(self.organisms) if self.organisms else 0.0
        return self.avg_fitness

    def compute_max_fitness(self) -> float:
        best = 0.0
        for organism in self.organisms:
            if organism.fitness > best:
                best = organism.fitness
        self.max_fitness = best
        return self.max_fitness

    def count_offspring(self, skim: float) -> float:
        """Turn the members' fractional offspring shares into an integer quota.

        Fractional parts accumulate in `skim` together with the leftover handed
        in from the previously counted species; every whole unit is flushed into
        this species' quota.

        Returns:
            The fractional leftover to pass on to the next species.
        """
        self.expected_offspring = 0
        for organism in self.organisms:
            whole = math.floor(organism.expected_offspring)
            fraction = math.fmod(organism.expected_offspring, 1.0)
            self.expected_offspring += int(whole)

            skim += fraction
            if skim >= 1.0:
                skim_whole = math.floor(skim)
                self.expected_offspring += int(skim_whole)
                skim -= skim_whole
        return skim

    def last_improved(self) -> int:
        """Generations since the species last beat its fitness record."""
        return self.age - self.age_of_last_improvement

    def find_champion(self) -> Organism | None:
        """Rescan for the member with strictly the highest current fitness."""
        best_fitness = 0.0
        champion: Organism | None = None
        for organism in self.organisms:
            if organism.fitness > best_fitness:
                best_fitness = organism.fitness
                champion = organism
        return champion

    def __str__(self) -> str:
        lines = [
            f"Species #{self.id}, age={self.age}, avg_fitness={self.avg_fitness:.3f}, "
            f"max_fitness={self.max_fitness:.3f}, "
            f"max_fitness_ever={self.max_fitness_ever:.3f}, "
            f"expected_offspring={self.expected_offspring}, "
            f"age_of_last_improvement={self.age_of_last_improvement}",
            f"Has {len(self.organisms)} Organisms:",
        ]
        lines.extend(f"\t{organism}" for organism in self.organisms)
        return "\n".join(lines)


def _leader_fitness(species: Species) -> float:
    leader = species.first_organism()
    return leader.original_fitness if leader is not None else float("-inf")


def sort_by_original_fitness(species: Iterable[Species]) -> list[Species]:
    """Rank species best first by their leading organism's raw fitness.

    The sort is stable so equally ranked species keep their list order,
    which keeps offspring counting and interspecies selection reproducible.
    """
    return sorted(species, key=_leader_fitness, reverse=True)


def sort_by_max_fitness(species: Iterable[Species]) -> list[Species]:
    """Rank species best first by their last computed maximal fitness."""
    return sorted(species, key=lambda item: item.max_fitness, reverse=True)


__all__ = [
    "Species",
    "sort_by_max_fitness",
    "sort_by_original_fitness",
]
