from __future__ import annotations

from collections.abc import Iterable
from random import Random

import pytest
from loguru import logger
from neatcore.config import NEATConfig
from neatcore.errors import ConfigurationError, GenomeError
from neatcore.organism import Organism
from neatcore.population import Population
from neatcore.reproduction import (
    _crossover_operator,
    assign_expected_offspring,
    count_species_offspring,
    place_organism,
    reproduce,
)
from neatcore.species import Species


class StubGenome:
    """Genome double that journals every call and reports scripted distances."""

    def __init__(
        self,
        genome_id: int,
        *,
        journal: list[tuple] | None = None,
        distances: dict[int, float] | None = None,
        default_distance: float = 0.0,
        fail_on: str | None = None,
        connect_result: bool = True,
    ) -> None:
        self.id = genome_id
        self.journal = journal if journal is not None else []
        self.distances = distances if distances is not None else {}
        self.default_distance = default_distance
        self.fail_on = fail_on
        self.connect_result = connect_result

    def _record(self, op: str, *extra) -> None:
        if op == self.fail_on:
            msg = f"{op} failed"
            raise GenomeError(msg)
        self.journal.append((op, self.id, *extra))

    def _offspring(self, genome_id: int) -> StubGenome:
        return StubGenome(
            genome_id,
            journal=self.journal,
            distances=self.distances,
            default_distance=self.default_distance,
            fail_on=self.fail_on,
            connect_result=self.connect_result,
        )

    def duplicate(self, genome_id: int) -> StubGenome:
        self._record("duplicate", genome_id)
        return self._offspring(genome_id)

    def genesis(self, generation: int) -> None:
        self._record("genesis")

    def mutate_link_weights(self, power, rate, mode, *, rng) -> int:
        self._record("mutate_link_weights")
        return 0

    def mutate_add_node(self, population, config, *, rng) -> bool:
        self._record("mutate_add_node")
        return True

    def mutate_add_link(self, population, config, *, rng) -> bool:
        self._record("mutate_add_link")
        return True

    def mutate_connect_sensors(self, population, config, *, rng) -> bool:
        self._record("mutate_connect_sensors")
        return self.connect_result

    def mutate_all_nonstructural(self, config, *, rng) -> None:
        self._record("mutate_all_nonstructural")

    def _mate(self, op, other, genome_id, fitness1, fitness2) -> StubGenome:
        self._record(op, other.id, fitness1, fitness2)
        return self._offspring(genome_id)

    def mate_multipoint(self, other, genome_id, fitness1, fitness2, *, rng, disable_inherit_rate=0.75):
        return self._mate("mate_multipoint", other, genome_id, fitness1, fitness2)

    def mate_multipoint_avg(self, other, genome_id, fitness1, fitness2, *, rng, disable_inherit_rate=0.75):
        return self._mate("mate_multipoint_avg", other, genome_id, fitness1, fitness2)

    def mate_singlepoint(self, other, genome_id, fitness1, fitness2, *, rng, disable_inherit_rate=0.75):
        return self._mate("mate_singlepoint", other, genome_id, fitness1, fitness2)

    def compatibility(self, other, config) -> float:
        return self.distances.get(other.id, self.default_distance)

    def write(self, handle) -> None:
        handle.write(f"genomestart {self.id}\ngenomeend {self.id}\n")


class ScriptedRandom(Random):
    """Random source replaying scripted draws in order."""

    def __init__(
        self,
        draws: Iterable[float] = (),
        indices: Iterable[int] = (),
        *,
        fallback: float | None = None,
    ) -> None:
        super().__init__(0)
        self.draws = list(draws)
        self.indices = list(indices)
        self.fallback = fallback

    def random(self) -> float:
        if self.draws:
            return self.draws.pop(0)
        if self.fallback is None:
            raise AssertionError("random() called more often than scripted")
        return self.fallback

    def randrange(self, *args, **kwargs) -> int:  # type: ignore[override]
        if self.indices:
            return self.indices.pop(0)
        if self.fallback is None:
            raise AssertionError("randrange() called more often than scripted")
        return 0


def build_population(
    *groups: list[tuple[int, float]],
    journal: list[tuple] | None = None,
    **genome_options,
) -> Population:
    """One species per group of `(genome_id, original_fitness)` members."""
    population = Population(next_genome_id=100)
    journal = journal if journal is not None else []
    for group in groups:
        species: Species | None = None
        for genome_id, fitness in group:
            organism = Organism(
                StubGenome(genome_id, journal=journal, **genome_options),
                fitness=fitness,
                original_fitness=fitness,
            )
            if species is None:
                species = population.create_species(organism)
            else:
                species.add_organism(organism)
                organism.species_id = species.id
            population.organisms.append(organism)
    return population


def ops(journal: list[tuple], genome_id: int | None = None) -> list[str]:
    return [entry[0] for entry in journal if genome_id is None or entry[1] == genome_id]


def test_place_organism_joins_closest_species() -> None:
    population = build_population([(1, 1.0)], [(2, 1.0)], [(3, 1.0)])
    newcomer = Organism(StubGenome(10, distances={1: 0.3, 2: 0.2, 3: 0.35}))

    species = place_organism(population, newcomer, NEATConfig(compat_threshold=0.4))

    assert species.id == 2
    assert newcomer.species_id == 2
    assert species.organisms[-1] is newcomer


def test_place_organism_founds_new_species() -> None:
    population = build_population([(1, 1.0)])
    stranger = Organism(StubGenome(10, default_distance=5.0))

    species = place_organism(population, stranger, NEATConfig(compat_threshold=3.0))

    assert species.id == 2
    assert species.is_novel
    assert [item.id for item in population.species] == [1, 2]


def test_distance_equal_to_threshold_does_not_match() -> None:
    population = build_population([(1, 1.0)])
    borderline = Organism(StubGenome(10, default_distance=3.0))

    species = place_organism(population, borderline, NEATConfig(compat_threshold=3.0))

    assert species.id == 2


def test_zero_compat_threshold_creates_nothing() -> None:
    population = build_population([(1, 2.0), (2, 1.0)])
    species = population.species[0]
    species.expected_offspring = 2
    members = list(species.organisms)

    with pytest.raises(ConfigurationError):
        reproduce(
            species,
            2,
            population,
            [species],
            NEATConfig(compat_threshold=0.0),
            ScriptedRandom(),
        )

    assert population.next_genome_id == 100
    assert population.species == [species]
    assert species.organisms == members


def test_empty_species_with_quota_raises() -> None:
    population = build_population([(1, 1.0)])
    empty = Species(id=9, expected_offspring=2)

    with pytest.raises(ConfigurationError):
        reproduce(empty, 2, population, [empty], NEATConfig(), ScriptedRandom())


def test_zero_quota_produces_nothing() -> None:
    population = build_population([(1, 1.0)])
    species = population.species[0]
    species.expected_offspring = 0

    assert reproduce(species, 2, population, [species], NEATConfig(), ScriptedRandom()) == []


def test_large_quota_keeps_one_champion_clone() -> None:
    journal: list[tuple] = []
    population = build_population([(1, 2.0), (2, 1.0)], journal=journal)
    species = population.species[0]
    species.expected_offspring = 6
    config = NEATConfig(
        pop_size=10,
        mutate_only_prob=1.0,
        mutate_add_node_prob=0.0,
        mutate_add_link_prob=0.0,
        mutate_connect_sensors_prob=0.0,
    )

    offspring = reproduce(species, 2, population, [species], config, ScriptedRandom(fallback=0.5))

    assert [baby.genome.id for baby in offspring] == [100, 101, 102, 103, 104, 105]
    assert all(baby.generation == 2 for baby in offspring)
    assert ops(journal, 100) == []
    assert ("duplicate", 1, 100) in journal
    for genome_id in range(101, 106):
        assert ops(journal, genome_id) == ["mutate_all_nonstructural"]
    assert population.next_genome_id == 106
    assert all(baby.species_id == species.id for baby in offspring)


def test_super_champion_clones() -> None:
    journal: list[tuple] = []
    population = build_population([(1, 7.0), (2, 1.0)], journal=journal)
    species = population.species[0]
    champion = species.organisms[0]
    champion.super_champ_offspring = 3
    champion.is_population_champion = True
    species.expected_offspring = 3

    offspring = reproduce(
        species,
        4,
        population,
        [species],
        NEATConfig(pop_size=10),
        ScriptedRandom([0.1, 0.9]),
    )

    first, second, third = offspring
    assert ops(journal, first.genome.id) == ["mutate_link_weights"]
    assert ops(journal, second.genome.id) == ["genesis", "mutate_add_link"]
    assert second.mutation_struct_baby
    assert ops(journal, third.genome.id) == []
    assert third.is_population_champion_child
    assert third.highest_fitness == pytest.approx(7.0)
    assert not first.is_population_champion_child
    assert champion.super_champ_offspring == 0


def test_single_member_species_reproduces_by_mutation() -> None:
    journal: list[tuple] = []
    population = build_population([(1, 1.0)], journal=journal)
    species = population.species[0]
    species.expected_offspring = 1

    (baby,) = reproduce(
        species,
        2,
        population,
        [species],
        NEATConfig(mutate_only_prob=0.0),
        ScriptedRandom([0.5, 0.01], [0]),
    )

    assert ops(journal, baby.genome.id) == ["mutate_add_node"]
    assert baby.mutation_struct_baby
    assert not baby.mate_baby


def test_add_link_mutation_builds_phenotype_first() -> None:
    journal: list[tuple] = []
    population = build_population([(1, 1.0)], journal=journal)
    species = population.species[0]
    species.expected_offspring = 1

    (baby,) = reproduce(
        species,
        2,
        population,
        [species],
        NEATConfig(),
        ScriptedRandom([0.1, 0.5, 0.01], [0]),
    )

    assert ops(journal, baby.genome.id) == ["genesis", "mutate_add_link"]
    assert baby.mutation_struct_baby


def test_failed_structural_mutation_falls_back_to_nonstructural() -> None:
    journal: list[tuple] = []
    population = build_population([(1, 1.0)], journal=journal, connect_result=False)
    species = population.species[0]
    species.expected_offspring = 1

    (baby,) = reproduce(
        species,
        2,
        population,
        [species],
        NEATConfig(),
        ScriptedRandom([0.1, 0.5, 0.5, 0.1], [0]),
    )

    assert ops(journal, baby.genome.id) == [
        "mutate_connect_sensors",
        "mutate_all_nonstructural",
    ]
    assert not baby.mutation_struct_baby


def test_mating_without_mutation() -> None:
    journal: list[tuple] = []
    population = build_population(
        [(1, 3.0), (2, 1.0)],
        journal=journal,
        distances={1: 1.0, 2: 1.0},
    )
    species = population.species[0]
    species.expected_offspring = 1

    (baby,) = reproduce(
        species,
        2,
        population,
        [species],
        NEATConfig(),
        ScriptedRandom([0.9, 0.5, 0.1, 0.1], [0, 1]),
    )

    assert ("mate_multipoint", 1, 2, 3.0, 1.0) in journal
    assert ops(journal, baby.genome.id) == []
    assert baby.mate_baby
    assert not baby.mutation_struct_baby


def test_identical_parents_force_mutation() -> None:
    journal: list[tuple] = []
    population = build_population([(1, 3.0), (2, 1.0)], journal=journal)
    species = population.species[0]
    species.expected_offspring = 1

    (baby,) = reproduce(
        species,
        2,
        population,
        [species],
        NEATConfig(),
        ScriptedRandom([0.9, 0.5, 0.1, 0.1, 0.5, 0.5, 0.9], [0, 0]),
    )

    assert ("mate_multipoint", 1, 1, 3.0, 3.0) in journal
    assert ops(journal, baby.genome.id) == ["mutate_all_nonstructural"]
    assert baby.mate_baby


def test_zero_distance_parents_force_mutation() -> None:
    journal: list[tuple] = []
    population = build_population([(1, 3.0), (2, 1.0)], journal=journal)
    species = population.species[0]
    species.expected_offspring = 1

    (baby,) = reproduce(
        species,
        2,
        population,
        [species],
        NEATConfig(),
        ScriptedRandom([0.9, 0.5, 0.1, 0.1, 0.01], [0, 1]),
    )

    assert ops(journal, baby.genome.id) == ["mutate_add_node"]
    assert baby.mutation_struct_baby


def test_interspecies_father_is_rank_biased() -> None:
    journal: list[tuple] = []
    population = build_population(
        [(1, 3.0), (2, 1.0)],
        [(3, 2.0)],
        journal=journal,
        distances={1: 2.0, 3: 2.0},
    )
    own, other = population.species
    own.expected_offspring = 1
    ranked = [own, other, *(Species(id=10 + index) for index in range(6))]

    reproduce(
        own,
        2,
        population,
        ranked,
        NEATConfig(),
        ScriptedRandom([0.9, 0.0001, 0.1, 0.9, 0.1, 0.1], [0]),
    )

    assert ("mate_multipoint", 1, 3, 3.0, 2.0) in journal


def test_interspecies_selection_falls_back_to_own_species() -> None:
    journal: list[tuple] = []
    population = build_population([(1, 3.0), (2, 1.0)], [(3, 2.0)], journal=journal)
    own, other = population.species
    own.expected_offspring = 1

    (baby,) = reproduce(
        own,
        2,
        population,
        [own, other],
        NEATConfig(),
        ScriptedRandom(
            [0.9, 0.0001, 0.5, 0.5, 0.5, 0.5, 0.5, 0.1, 0.1, 0.5, 0.5, 0.9],
            [0],
        ),
    )

    assert ("mate_multipoint", 1, 1, 3.0, 3.0) in journal
    assert ops(journal, baby.genome.id) == ["mutate_all_nonstructural"]


def test_crossover_operator_choice() -> None:
    genome = StubGenome(1)
    config = NEATConfig(mate_multipoint_prob=0.3, mate_multipoint_avg_prob=0.4)

    assert _crossover_operator(genome, config, ScriptedRandom([0.1])) == genome.mate_multipoint
    assert (
        _crossover_operator(genome, config, ScriptedRandom([0.5, 0.99]))
        == genome.mate_multipoint_avg
    )

    split = NEATConfig(mate_multipoint_avg_prob=0.4, mate_singlepoint_prob=0.4)
    assert (
        _crossover_operator(genome, split, ScriptedRandom([0.5, 0.6]))
        == genome.mate_singlepoint
    )

    neither = NEATConfig(mate_multipoint_avg_prob=0.0, mate_singlepoint_prob=0.0)
    assert (
        _crossover_operator(genome, neither, ScriptedRandom([0.5, 0.0]))
        == genome.mate_singlepoint
    )


def test_genome_errors_propagate() -> None:
    population = build_population([(1, 3.0), (2, 1.0)], fail_on="mate_multipoint")
    species = population.species[0]
    species.expected_offspring = 2

    with pytest.raises(GenomeError):
        reproduce(
            species,
            2,
            population,
            [species],
            NEATConfig(),
            ScriptedRandom([0.9, 0.5, 0.1], [0, 1]),
        )


def test_oversized_quota_is_logged() -> None:
    population = build_population([(1, 1.0)])
    species = population.species[0]
    species.expected_offspring = 3
    config = NEATConfig(
        pop_size=2,
        mutate_add_node_prob=0.0,
        mutate_add_link_prob=0.0,
        mutate_connect_sensors_prob=0.0,
    )
    messages: list[str] = []
    logger.enable("neatcore")
    handler_id = logger.add(messages.append, level="WARNING", format="{message}")
    try:
        offspring = reproduce(
            species, 2, population, [species], config, ScriptedRandom(fallback=0.5)
        )
    finally:
        logger.remove(handler_id)
        logger.disable("neatcore")

    assert len(offspring) == 3
    assert any("exceeds population size" in message for message in messages)


def test_assign_expected_offspring() -> None:
    organisms = [Organism(StubGenome(i), fitness=f) for i, f in enumerate([1.0, 2.0, 3.0])]

    average = assign_expected_offspring(organisms)

    assert average == pytest.approx(2.0)
    assert [o.expected_offspring for o in organisms] == pytest.approx([0.5, 1.0, 1.5])

    barren = [Organism(StubGenome(i)) for i in range(3)]
    assign_expected_offspring(barren)
    assert all(o.expected_offspring == 0.0 for o in barren)


def _species_with_shares(species_id: int, shares: list[float]) -> Species:
    species = Species(id=species_id)
    for index, share in enumerate(shares):
        species.add_organism(
            Organism(StubGenome(species_id * 10 + index), expected_offspring=share)
        )
    return species


def test_count_species_offspring_tops_up_largest_quota() -> None:
    first = _species_with_shares(1, [1.5, 1.5])
    second = _species_with_shares(2, [0.9])

    total = count_species_offspring([first, second], 4)

    assert total == 4
    assert first.expected_offspring == 4
    assert second.expected_offspring == 0


def test_count_species_offspring_hands_everything_to_one_species() -> None:
    first = _species_with_shares(1, [0.0])
    second = _species_with_shares(2, [0.0])

    total = count_species_offspring([first, second], 5)

    assert total == 5
    assert first.expected_offspring == 5
    assert second.expected_offspring == 0


def test_count_species_offspring_carries_skim_between_species() -> None:
    first = _species_with_shares(1, [1.75])
    second = _species_with_shares(2, [1.25])

    total = count_species_offspring([first, second], 3)

    assert total == 3
    assert first.expected_offspring == 1
    # 0.75 left over from the first species completes a unit in the second.
    assert second.expected_offspring == 2


def test_count_species_offspring_follows_ranked_order() -> None:
    first = _species_with_shares(1, [1.75])
    second = _species_with_shares(2, [1.25])

    total = count_species_offspring([second, first], 3)

    assert total == 3
    assert second.expected_offspring == 1
    assert first.expected_offspring == 2
