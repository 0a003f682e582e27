"""Offspring allocation and per-species reproduction for NEAT."""

from __future__ import annotations

import math
from collections.abc import Sequence
from random import Random
from typing import TYPE_CHECKING

from loguru import logger

from .config import NEATConfig
from .errors import ConfigurationError, ConsistencyError
from .genome import GenomeLike, WeightMutationMode
from .organism import Organism
from .species import Species

if TYPE_CHECKING:
    from .population import Population

# Share of super-champion clones that only get their weights perturbed.
SUPER_CHAMP_WEIGHT_ONLY_PROB = 0.8
# Quota above which a species keeps an unmutated copy of its champion.
CHAMP_CLONE_MIN_OFFSPRING = 5
INTERSPECIES_SELECTION_TRIES = 5


def assign_expected_offspring(organisms: Sequence[Organism]) -> float:
    """Set every organism's fractional offspring share from normalized fitness.

    Returns:
        The population-wide average of the (adjusted) fitness.
    """
    if not organisms:
        return 0.0
    average = sum(organism.fitness for organism in organisms) / len(organisms)
    for organism in organisms:
        organism.expected_offspring = (
            organism.fitness / average if average > 0.0 else 0.0
        )
    return average


def count_species_offspring(sorted_species: Sequence[Species], pop_size: int) -> int:
    """Convert fractional shares into integer species quotas.

    Species are counted in ranked order with the skim threaded from one to
    the next. A quota total left short by rounding gives one extra offspring to
    the species with the largest quota; if that still falls short, that species
    alone receives the whole population.

    Returns:
        The total number of offspring allocated.
    """
    skim = 0.0
    total = 0
    for species in sorted_species:
        skim = species.count_offspring(skim)
        total += species.expected_offspring

    if total < pop_size and sorted_species:
        best = max(sorted_species, key=lambda item: item.expected_offspring)
        best.expected_offspring += 1
        total += 1
        if total < pop_size:
            logger.info(
                "Offspring total {} below population size {}; species {} takes all",
                total,
                pop_size,
                best.id,
            )
            for species in sorted_species:
                species.expected_offspring = 0
            best.expected_offspring = pop_size
            total = pop_size
    return total


def select_rank_biased(sorted_species: Sequence[Species], rng: Random) -> Species:
    """Draw a species favouring the front (best ranked part) of the list."""
    scaled = rng.random() / 4.0
    return sorted_species[int(math.floor(scaled * len(sorted_species)))]


def place_organism(
    population: Population,
    organism: Organism,
    config: NEATConfig,
) -> Species:
    """Add an organism to its closest compatible species or found a new one.

    Each species is represented by its first organism; the species with the
    smallest distance strictly below `compat_threshold` wins.
    """
    if not population.species:
        return population.create_species(organism)
    if config.compat_threshold == 0:
        msg = "Compatibility threshold is zero; no species can ever match."
        raise ConfigurationError(msg)

    best: Species | None = None
    best_distance = math.inf
    for candidate in population.species:
        leader = candidate.first_organism()
        if leader is None:
            continue
        distance = organism.genome.compatibility(leader.genome, config)
        if distance < config.compat_threshold and distance < best_distance:
            best = candidate
            best_distance = distance

    if best is None:
        return population.create_species(organism)

    logger.debug(
        "Compatible species {} found for organism {} (distance={:.4f})",
        best.id,
        organism.genome.id,
        best_distance,
    )
    best.add_organism(organism)
    organism.species_id = best.id
    return best


def reproduce(
    species: Species,
    generation: int,
    population: Population,
    sorted_species: Sequence[Species],
    config: NEATConfig,
    rng: Random,
) -> list[Organism]:
    """Produce `species.expected_offspring` organisms and place each of them.

    Args:
        species: The parent species, members sorted best first.
        generation: Generation the offspring belong to.
        population: Owner of the species list the offspring are placed into.
        sorted_species: Every species ranked best first, used for
            interspecies mating.
        config: Reproduction probabilities and thresholds.
        rng: The shared random source.

    Returns:
        The produced organisms in creation order.

    Raises:
        ConfigurationError: The species is empty but owes offspring, or the
            compatibility threshold is zero while species exist.
        GenomeError: Propagated unchanged from genome operators; the rest of
            the pass is abandoned.
    """
    if species.expected_offspring > 0 and not species.organisms:
        msg = f"Attempt to reproduce out of empty species {species.id}"
        raise ConfigurationError(msg)
    if species.expected_offspring <= 0:
        return []
    if population.species and config.compat_threshold == 0:
        msg = "Compatibility threshold is zero; no species can ever match."
        raise ConfigurationError(msg)
    if species.expected_offspring > config.pop_size:
        logger.warning(
            "Species {} expected offspring {} exceeds population size limit {}",
            species.id,
            species.expected_offspring,
            config.pop_size,
        )

    pool_size = len(species.organisms)
    champion = species.organisms[0]
    champ_clone_done = False
    offspring: list[Organism] = []

    for count in range(species.expected_offspring):
        logger.debug(
            "Species {}: offspring #{} of {}",
            species.id,
            count,
            species.expected_offspring,
        )
        genome_id = population.allocate_genome_id()

        if champion.super_champ_offspring > 0:
            baby = _clone_super_champion(
                champion, genome_id, generation, population, config, rng
            )
        elif not champ_clone_done and species.expected_offspring > CHAMP_CLONE_MIN_OFFSPRING:
            logger.debug("Species {}: clone species champion", species.id)
            baby = Organism(champion.genome.duplicate(genome_id), generation=generation)
            champ_clone_done = True
        elif rng.random() < config.mutate_only_prob or pool_size == 1:
            logger.debug("Species {}: reproduce by mutation", species.id)
            mom = species.organisms[rng.randrange(pool_size)]
            genome = mom.genome.duplicate(genome_id)
            structural = _mutate(genome, generation, population, config, rng)
            baby = Organism(genome, generation=generation, mutation_struct_baby=structural)
        else:
            logger.debug("Species {}: reproduce by mating", species.id)
            baby = _mate(
                species,
                pool_size,
                genome_id,
                generation,
                population,
                sorted_species,
                config,
                rng,
            )

        place_organism(population, baby, config)
        offspring.append(baby)
    return offspring


def _clone_super_champion(
    champion: Organism,
    genome_id: int,
    generation: int,
    population: Population,
    config: NEATConfig,
    rng: Random,
) -> Organism:
    genome = champion.genome.duplicate(genome_id)
    structural = False
    # The last reserved clone stays an exact copy.
    if champion.super_champ_offspring > 1:
        if rng.random() < SUPER_CHAMP_WEIGHT_ONLY_PROB or config.mutate_add_link_prob == 0.0:
            genome.mutate_link_weights(
                config.weight_mut_power,
                1.0,
                WeightMutationMode.GAUSSIAN,
                rng=rng,
            )
        else:
            genome.genesis(generation)
            genome.mutate_add_link(population, config, rng=rng)
            structural = True

    baby = Organism(genome, generation=generation, mutation_struct_baby=structural)
    if champion.super_champ_offspring == 1 and champion.is_population_champion:
        baby.is_population_champion_child = True
        baby.highest_fitness = champion.original_fitness
    champion.super_champ_offspring -= 1
    return baby


def _mutate(
    genome: GenomeLike,
    generation: int,
    population: Population,
    config: NEATConfig,
    rng: Random,
) -> bool:
    """Apply one structural mutation, or the non-structural pass if none fires.

    Returns:
        Whether the genome was marked as structurally mutated.
    """
    structural = False
    if rng.random() < config.mutate_add_node_prob:
        genome.mutate_add_node(population, config, rng=rng)
        structural = True
    elif rng.random() < config.mutate_add_link_prob:
        genome.genesis(generation)
        genome.mutate_add_link(population, config, rng=rng)
        structural = True
    elif rng.random() < config.mutate_connect_sensors_prob:
        structural = genome.mutate_connect_sensors(population, config, rng=rng)

    if not structural:
        genome.mutate_all_nonstructural(config, rng=rng)
    return structural


def _select_father(
    species: Species,
    pool_size: int,
    sorted_species: Sequence[Species],
    config: NEATConfig,
    rng: Random,
) -> Organism:
    if rng.random() > config.interspecies_mate_rate or not sorted_species:
        return species.organisms[rng.randrange(pool_size)]

    candidate = species
    attempts = 0
    while candidate is species and attempts < INTERSPECIES_SELECTION_TRIES:
        candidate = select_rank_biased(sorted_species, rng)
        attempts += 1
    father = candidate.first_organism()
    if father is None:
        msg = f"Species {candidate.id} selected for mating has no organisms"
        raise ConsistencyError(msg)
    return father


def _crossover_operator(genome: GenomeLike, config: NEATConfig, rng: Random):
    if rng.random() < config.mate_multipoint_prob:
        return genome.mate_multipoint
    draw = rng.random()
    avg_share = config.mate_multipoint_avg_prob + config.mate_singlepoint_prob
    if avg_share > 0.0 and draw < config.mate_multipoint_avg_prob / avg_share:
        return genome.mate_multipoint_avg
    return genome.mate_singlepoint


def _mate(
    species: Species,
    pool_size: int,
    genome_id: int,
    generation: int,
    population: Population,
    sorted_species: Sequence[Species],
    config: NEATConfig,
    rng: Random,
) -> Organism:
    mom = species.organisms[rng.randrange(pool_size)]
    dad = _select_father(species, pool_size, sorted_species, config, rng)
    fitness_mom = mom.original_fitness
    fitness_dad = dad.original_fitness

    mate = _crossover_operator(mom.genome, config, rng)
    logger.debug("Species {}: crossover via {}", species.id, mate.__name__)
    genome = mate(
        dad.genome,
        genome_id,
        fitness_mom,
        fitness_dad,
        rng=rng,
        disable_inherit_rate=config.disable_inherit_rate,
    )

    structural = False
    # Exact comparison against zero, no tolerance.
    if (
        rng.random() > config.mate_only_prob
        or dad.genome.id == mom.genome.id
        or dad.genome.compatibility(mom.genome, config) == 0.0
    ):
        structural = _mutate(genome, generation, population, config, rng)

    return Organism(
        genome,
        generation=generation,
        mutation_struct_baby=structural,
        mate_baby=True,
    )


__all__ = [
    "assign_expected_offspring",
    "count_species_offspring",
    "place_organism",
    "reproduce",
    "select_rank_biased",
]
