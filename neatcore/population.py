"""Population orchestration for the NEAT generation turnover."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from random import Random

from loguru import logger

from .config import NEATConfig
from .errors import ConsistencyError
from .genome import GenomeLike, WeightMutationMode
from .innovations import InnovationTracker
from .organism import Organism
from .reproduction import (
    assign_expected_offspring,
    count_species_offspring,
    place_organism,
    reproduce,
)
from .species import Species, sort_by_original_fitness

# Generations past `drop_off_age` without a new population record before
# reproduction is focused on the two best species.
STAGNATION_GRACE = 5


@dataclass(slots=True)
class Population:
    """Owns the organisms and species of the current generation."""

    organisms: list[Organism] = field(default_factory=list)
    species: list[Species] = field(default_factory=list)
    innovations: InnovationTracker = field(default_factory=InnovationTracker)
    last_species_id: int = 0
    next_genome_id: int = 0
    highest_fitness: float = 0.0
    highest_last_changed: int = 0

    @classmethod
    def spawn(
        cls,
        seed_genome: GenomeLike,
        config: NEATConfig,
        rng: Random,
        *,
        innovations: InnovationTracker | None = None,
    ) -> Population:
        """Create `pop_size` randomized copies of a seed genome and speciate them."""
        population = cls(
            innovations=innovations if innovations is not None else InnovationTracker(),
            next_genome_id=seed_genome.id + 1,
        )
        for _ in range(config.pop_size):
            genome = seed_genome.duplicate(population.allocate_genome_id())
            genome.mutate_link_weights(
                1.0,
                1.0,
                WeightMutationMode.COLD_GAUSSIAN,
                rng=rng,
            )
            population.organisms.append(Organism(genome, generation=0))
        population.speciate(population.organisms, config)
        return population

    def allocate_genome_id(self) -> int:
        genome_id = self.next_genome_id
        self.next_genome_id += 1
        return genome_id

    def create_species(self, organism: Organism) -> Species:
        """Found a novel species around `organism` under the next free id."""
        self.last_species_id += 1
        species = Species(id=self.last_species_id, is_novel=True)
        self.species.append(species)
        species.add_organism(organism)
        organism.species_id = species.id
        logger.debug(
            "Created species {} for organism {} ({} species in population)",
            species.id,
            organism.genome.id,
            len(self.species),
        )
        return species

    def species_by_id(self, species_id: int | None) -> Species:
        for species in self.species:
            if species.id == species_id:
                return species
        msg = f"Unknown species id: {species_id}"
        raise KeyError(msg)

    def speciate(self, organisms: Iterable[Organism], config: NEATConfig) -> None:
        """Place every organism into its closest compatible species."""
        for organism in organisms:
            place_organism(self, organism, config)

    def epoch(self, generation: int, config: NEATConfig, rng: Random) -> list[Organism]:
        """Turn the evaluated generation into generation number `generation`.

        Organism fitness must already hold the raw scores of the current
        generation.

        Returns:
            The organisms of the new generation, also stored in `organisms`.
        """
        if not self.organisms or not self.species:
            msg = "Cannot run an epoch on an empty population."
            raise ConsistencyError(msg)

        for species in self.species:
            species.adjust_fitness(config)
        for species in self.species:
            species.compute_avg_fitness()
            species.compute_max_fitness()

        assign_expected_offspring(self.organisms)
        sorted_species = sort_by_original_fitness(self.species)
        total = count_species_offspring(sorted_species, config.pop_size)
        self._check_stagnation(sorted_species, config)

        champion = sorted_species[0].first_organism()
        if champion is not None:
            champion.is_population_champion = True

        logger.info(
            "Generation {}: {} species, {} offspring allotted, best original fitness {:.4f}",
            generation,
            len(self.species),
            total,
            self.highest_fitness,
        )

        for organism in self.organisms:
            if organism.to_eliminate:
                self.species_by_id(organism.species_id).remove_organism(organism)
        self.organisms = [
            organism for organism in self.organisms if not organism.to_eliminate
        ]

        offspring: list[Organism] = []
        for species in sorted_species:
            offspring.extend(
                reproduce(species, generation, self, sorted_species, config, rng)
            )

        for organism in self.organisms:
            self.species_by_id(organism.species_id).remove_organism(organism)

        survivors: list[Species] = []
        for species in self.species:
            if not species.organisms:
                continue
            if species.is_novel:
                species.is_novel = False
            else:
                species.age += 1
            survivors.append(species)
        self.species = survivors
        self.organisms = offspring
        return offspring

    def _check_stagnation(
        self,
        sorted_species: Sequence[Species],
        config: NEATConfig,
    ) -> None:
        leader = sorted_species[0].first_organism()
        if leader is not None and leader.original_fitness > self.highest_fitness:
            self.highest_fitness = leader.original_fitness
            self.highest_last_changed = 0
            return
        self.highest_last_changed += 1
        if self.highest_last_changed < config.drop_off_age + STAGNATION_GRACE:
            return

        logger.info(
            "Population stagnated for {} generations; focusing on the best species",
            self.highest_last_changed,
        )
        self.highest_last_changed = 0
        half_pop = config.pop_size // 2
        quotas = [half_pop, config.pop_size - half_pop]
        if len(sorted_species) == 1:
            quotas = [config.pop_size]
        for index, species in enumerate(sorted_species):
            if index >= len(quotas):
                species.expected_offspring = 0
                continue
            species.expected_offspring = quotas[index]
            species.age_of_last_improvement = species.age
            first = species.first_organism()
            if first is not None:
                first.super_champ_offspring = quotas[index]


__all__ = ["Population", "STAGNATION_GRACE"]
