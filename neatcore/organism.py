"""Organisms: one genome plus its per-generation evolutionary bookkeeping."""

from __future__ import annotations

from dataclasses import dataclass

from .genome import GenomeLike


@dataclass(slots=True, eq=False)
class Organism:
    """A genome together with fitness accounting and reproduction flags.

    `fitness` is shared and penalized in place by species adjustment while
    `original_fitness` keeps the raw score for historical comparisons.
    `species_id` is a non-owning back-reference, resolved through the
    population that owns the species.
    """

    genome: GenomeLike
    generation: int = 0
    fitness: float = 0.0
    original_fitness: float = 0.0
    error: float = 0.0
    expected_offspring: float = 0.0
    highest_fitness: float = 0.0

    is_champion: bool = False
    to_eliminate: bool = False
    is_winner: bool = False

    super_champ_offspring: int = 0
    is_population_champion: bool = False
    is_population_champion_child: bool = False

    mutation_struct_baby: bool = False
    mate_baby: bool = False

    species_id: int | None = None

    def __str__(self) -> str:
        return (
            f"Organism #{self.genome.id} fitness={self.fitness:.3f} "
            f"original_fitness={self.original_fitness:.3f} "
            f"expected_offspring={self.expected_offspring:.3f} "
            f"species={self.species_id}"
        )


__all__ = ["Organism"]
