"""Genome collaborator contract and its reference node/link implementation."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from random import Random
from typing import TYPE_CHECKING, Protocol, TextIO

from .errors import GenomeError
from .genes import LinkGene, NodeGene, NodeType
from .innovations import InnovationTracker

if TYPE_CHECKING:
    from .config import NEATConfig
    from .population import Population


class WeightMutationMode(str, Enum):
    """How `mutate_link_weights` changes a selected link."""

    GAUSSIAN = "gaussian"
    COLD_GAUSSIAN = "cold_gaussian"


class GenomeLike(Protocol):
    """Operations the reproduction engine needs from a genome."""

    id: int

    def duplicate(self, genome_id: int) -> GenomeLike: ...

    def genesis(self, generation: int) -> None: ...

    def mutate_link_weights(
        self,
        power: float,
        rate: float,
        mode: WeightMutationMode,
        *,
        rng: Random,
    ) -> int: ...

    def mutate_add_node(
        self, population: Population, config: NEATConfig, *, rng: Random
    ) -> bool: ...

    def mutate_add_link(
        self, population: Population, config: NEATConfig, *, rng: Random
    ) -> bool: ...

    def mutate_connect_sensors(
        self, population: Population, config: NEATConfig, *, rng: Random
    ) -> bool: ...

    def mutate_all_nonstructural(self, config: NEATConfig, *, rng: Random) -> None: ...

    def mate_multipoint(
        self,
        other: GenomeLike,
        genome_id: int,
        fitness1: float,
        fitness2: float,
        *,
        rng: Random,
        disable_inherit_rate: float = 0.75,
    ) -> GenomeLike: ...

    def mate_multipoint_avg(
        self,
        other: GenomeLike,
        genome_id: int,
        fitness1: float,
        fitness2: float,
        *,
        rng: Random,
        disable_inherit_rate: float = 0.75,
    ) -> GenomeLike: ...

    def mate_singlepoint(
        self,
        other: GenomeLike,
        genome_id: int,
        fitness1: float,
        fitness2: float,
        *,
        rng: Random,
        disable_inherit_rate: float = 0.75,
    ) -> GenomeLike: ...

    def compatibility(self, other: GenomeLike, config: NEATConfig) -> float: ...

    def write(self, handle: TextIO) -> None: ...


@dataclass(slots=True)
class Genome:
    """Node and link genes of one candidate network topology."""

    id: int
    nodes: dict[int, NodeGene]
    links: dict[int, LinkGene]
    _pair_index: dict[tuple[int, int], int] = field(
        init=False,
        default_factory=dict,
        repr=False,
        compare=False,
    )
    _phenotype: dict[int, list[int]] | None = field(
        init=False,
        default=None,
        repr=False,
        compare=False,
    )

    def __post_init__(self) -> None:
        if not self.nodes:
            msg = "Genome must contain at least one node."
            raise ValueError(msg)
        for innovation, link in self.links.items():
            if link.innovation != innovation:
                msg = (
                    f"Link innovation mismatch: key {innovation} "
                    f"!= link.innovation {link.innovation}"
                )
                raise ValueError(msg)
            if link.in_node_id not in self.nodes or link.out_node_id not in self.nodes:
                msg = "Link references unknown node."
                raise ValueError(msg)
            if link.endpoints in self._pair_index:
                msg = f"Duplicate link between nodes {link.endpoints}."
                raise ValueError(msg)
            self._pair_index[link.endpoints] = innovation

    @classmethod
    def initial(
        cls,
        genome_id: int,
        num_inputs: int,
        num_outputs: int,
        tracker: InnovationTracker,
    ) -> Genome:
        """Build a genome with every sensor (inputs plus bias) linked to every output."""
        nodes: dict[int, NodeGene] = {}
        for node_id in range(num_inputs):
            nodes[node_id] = NodeGene(node_id, NodeType.INPUT)
        nodes[num_inputs] = NodeGene(num_inputs, NodeType.BIAS)
        for offset in range(num_outputs):
            node_id = num_inputs + 1 + offset
            nodes[node_id] = NodeGene(node_id, NodeType.OUTPUT)
        tracker.reserve_nodes(nodes)

        links: dict[int, LinkGene] = {}
        for sensor in (node for node in nodes.values() if node.type.is_sensor):
            for output in (node for node in nodes.values() if node.type is NodeType.OUTPUT):
                innovation = tracker.register(sensor.id, output.id)
                links[innovation] = LinkGene(innovation, sensor.id, output.id, 0.0)
        return cls(id=genome_id, nodes=nodes, links=links)

    @property
    def size(self) -> int:
        """Number of link genes."""
        return len(self.links)

    def duplicate(self, genome_id: int) -> Genome:
        """Return a copy of the genetic encoding under a new identifier."""
        return Genome(id=genome_id, nodes=dict(self.nodes), links=dict(self.links))

    def contains_link(self, in_node: int, out_node: int) -> bool:
        return (in_node, out_node) in self._pair_index

    def add_link(self, link: LinkGene) -> None:
        """Add a new link gene to the genome."""
        if link.endpoints in self._pair_index:
            msg = f"Link between {link.endpoints} already exists."
            raise GenomeError(msg)
        if link.innovation in self.links:
            msg = f"Link innovation {link.innovation} already present."
            raise GenomeError(msg)
        if link.in_node_id not in self.nodes or link.out_node_id not in self.nodes:
            msg = "Link references unknown node."
            raise GenomeError(msg)
        self.links[link.innovation] = link
        self._pair_index[link.endpoints] = link.innovation

    def add_node(self, node: NodeGene) -> None:
        if node.id in self.nodes:
            msg = f"Node {node.id} already exists."
            raise GenomeError(msg)
        self.nodes[node.id] = node

    def genesis(self, generation: int) -> None:
        """Materialize the adjacency of enabled links used for recurrence checks."""
        adjacency: dict[int, list[int]] = {node_id: [] for node_id in self.nodes}
        for innovation in sorted(self.links):
            link = self.links[innovation]
            if link.enabled:
                adjacency[link.in_node_id].append(link.out_node_id)
        self._phenotype = adjacency

    def mutate_link_weights(
        self,
        power: float,
        rate: float,
        mode: WeightMutationMode,
        *,
        rng: Random,
    ) -> int:
        """Perturb (GAUSSIAN) or replace (COLD_GAUSSIAN) link weights in place.

        Returns:
            The number of links whose weight was modified.
        """
        mutated = 0
        for innovation in sorted(self.links):
            if rng.random() >= rate:
                continue
            link = self.links[innovation]
            delta = rng.uniform(-1.0, 1.0) * power
            if mode is WeightMutationMode.COLD_GAUSSIAN:
                updated = link.copy(weight=delta)
            else:
                updated = link.copy(weight=link.weight + delta)
            self.links[innovation] = updated
            mutated += 1
        return mutated

    def mutate_add_node(
        self,
        population: Population,
        config: NEATConfig,
        *,
        rng: Random,
    ) -> bool:
        """Split an enabled link by inserting a hidden node."""
        tracker = population.innovations
        candidates = [
            link
            for innovation, link in sorted(self.links.items())
            if link.enabled
            and self.nodes[link.in_node_id].type is not NodeType.BIAS
            and not _split_present(self, tracker, innovation)
        ]
        if not candidates:
            return False

        link = rng.choice(candidates)
        split = tracker.split(link.innovation, *link.endpoints)
        self.links[link.innovation] = link.copy(enabled=False)
        self.add_node(NodeGene(split.node_id, NodeType.HIDDEN))
        self.add_link(
            LinkGene(split.in_innovation, link.in_node_id, split.node_id, 1.0)
        )
        self.add_link(
            LinkGene(
                split.out_innovation,
                split.node_id,
                link.out_node_id,
                link.weight,
                recurrent=link.recurrent,
            )
        )
        self._phenotype = None
        return True

    def mutate_add_link(
        self,
        population: Population,
        config: NEATConfig,
        *,
        rng: Random,
    ) -> bool:
        """Add a new link between two unconnected nodes; requires `genesis` first."""
        if self._phenotype is None:
            msg = f"Genome {self.id}: phenotype not built, call genesis() before add-link."
            raise GenomeError(msg)

        sources = sorted(
            node_id
            for node_id, node in self.nodes.items()
            if node.type is not NodeType.OUTPUT or config.allow_recurrent
        )
        targets = sorted(
            node_id for node_id, node in self.nodes.items() if not node.type.is_sensor
        )
        if not sources or not targets:
            return False
        for _ in range(config.new_link_tries):
            in_id = rng.choice(sources)
            out_id = rng.choice(targets)
            if self.contains_link(in_id, out_id):
                continue
            recurrent = self._reaches(out_id, in_id)
            if recurrent and not config.allow_recurrent:
                continue
            innovation = population.innovations.register(in_id, out_id)
            self.add_link(
                LinkGene(
                    innovation,
                    in_id,
                    out_id,
                    rng.uniform(-1.0, 1.0),
                    recurrent=recurrent,
                )
            )
            self._phenotype = None
            return True
        return False

    def mutate_connect_sensors(
        self,
        population: Population,
        config: NEATConfig,
        *,
        rng: Random,
    ) -> bool:
        """Connect every sensor without outgoing links to all outputs."""
        outgoing = {link.in_node_id for link in self.links.values()}
        disconnected = sorted(
            node_id
            for node_id, node in self.nodes.items()
            if node.type.is_sensor and node_id not in outgoing
        )
        outputs = sorted(
            node_id
            for node_id, node in self.nodes.items()
            if node.type is NodeType.OUTPUT
        )
        added = False
        for sensor_id in disconnected:
            for output_id in outputs:
                if self.contains_link(sensor_id, output_id):
                    continue
                innovation = population.innovations.register(sensor_id, output_id)
                self.add_link(
                    LinkGene(innovation, sensor_id, output_id, rng.uniform(-1.0, 1.0))
                )
                added = True
        if added:
            self._phenotype = None
        return added

    def mutate_all_nonstructural(self, config: NEATConfig, *, rng: Random) -> None:
        """Weight perturbation plus enable-state toggling and re-enabling."""
        if rng.random() < config.mutate_link_weights_prob:
            self.mutate_link_weights(
                config.weight_mut_power,
                1.0,
                WeightMutationMode.GAUSSIAN,
                rng=rng,
            )
        if rng.random() < config.mutate_toggle_enable_prob:
            self._mutate_toggle_enable(rng)
        if rng.random() < config.mutate_gene_reenable_prob:
            self._mutate_gene_reenable()

    def mate_multipoint(
        self,
        other: Genome,
        genome_id: int,
        fitness1: float,
        fitness2: float,
        *,
        rng: Random,
        disable_inherit_rate: float = 0.75,
    ) -> Genome:
        """Matching genes from a random parent, the rest from the fitter one."""
        better, worse = self._rank_parents(other, fitness1, fitness2)
        chosen: list[LinkGene] = []
        for innovation in sorted(better.links):
            link = better.links[innovation]
            match = worse.links.get(innovation)
            if match is not None:
                picked = link if rng.random() < 0.5 else match
                link = picked.copy(
                    enabled=_inherit_enabled(link, match, rng, disable_inherit_rate)
                )
            chosen.append(link)
        return _assemble(genome_id, chosen, (better, worse))

    def mate_multipoint_avg(
        self,
        other: Genome,
        genome_id: int,
        fitness1: float,
        fitness2: float,
        *,
        rng: Random,
        disable_inherit_rate: float = 0.75,
    ) -> Genome:
        """Like `mate_multipoint` but matching genes average their weights."""
        better, worse = self._rank_parents(other, fitness1, fitness2)
        chosen: list[LinkGene] = []
        for innovation in sorted(better.links):
            link = better.links[innovation]
            match = worse.links.get(innovation)
            if match is not None:
                link = link.copy(
                    weight=(link.weight + match.weight) / 2.0,
                    enabled=_inherit_enabled(link, match, rng, disable_inherit_rate),
                )
            chosen.append(link)
        return _assemble(genome_id, chosen, (better, worse))

    def mate_singlepoint(
        self,
        other: Genome,
        genome_id: int,
        fitness1: float,
        fitness2: float,
        *,
        rng: Random,
        disable_inherit_rate: float = 0.75,
    ) -> Genome:
        """Cross at one gene of the smaller parent.

        Genes before the cross point come from the smaller parent, genes after it
        from the larger one, the gene at the point is averaged when both carry
        it. Fitness plays no part; the arguments keep the mating signatures
        uniform.
        """
        if self.size <= other.size:
            small, large = self, other
        else:
            small, large = other, self
        if not small.links:
            return large.duplicate(genome_id)

        innovations = sorted(small.links)
        cross = innovations[rng.randrange(len(innovations))]
        chosen: list[LinkGene] = [small.links[i] for i in innovations if i < cross]
        crossing = small.links[cross]
        match = large.links.get(cross)
        if match is not None:
            crossing = crossing.copy(
                weight=(crossing.weight + match.weight) / 2.0,
                enabled=_inherit_enabled(crossing, match, rng, disable_inherit_rate),
            )
        chosen.append(crossing)
        chosen.extend(large.links[i] for i in sorted(large.links) if i > cross)
        return _assemble(genome_id, chosen, (small, large))

    def compatibility(self, other: Genome, config: NEATConfig) -> float:
        """Compute the compatibility distance between two genomes."""
        innovations_left = sorted(self.links)
        innovations_right = sorted(other.links)

        index_left = 0
        index_right = 0
        disjoint = 0
        excess = 0
        weight_diff_sum = 0.0
        matches = 0

        while index_left < len(innovations_left) and index_right < len(innovations_right):
            innov_left = innovations_left[index_left]
            innov_right = innovations_right[index_right]
            if innov_left == innov_right:
                matches += 1
                weight_diff_sum += abs(
                    self.links[innov_left].weight - other.links[innov_right].weight
                )
                index_left += 1
                index_right += 1
            elif innov_left < innov_right:
                disjoint += 1
                index_left += 1
            else:
                disjoint += 1
                index_right += 1

        excess += len(innovations_left) - index_left
        excess += len(innovations_right) - index_right

        n = max(len(innovations_left), len(innovations_right))
        n = 1 if n < 20 else n
        average_weight_diff = weight_diff_sum / matches if matches else 0.0

        return (
            config.excess_coeff * excess / n
            + config.disjoint_coeff * disjoint / n
            + config.mutdiff_coeff * average_weight_diff
        )

    def write(self, handle: TextIO) -> None:
        """Dump the genome in the plain text genome format."""
        handle.write(f"genomestart {self.id}\n")
        for node_id in sorted(self.nodes):
            handle.write(f"node {node_id} {self.nodes[node_id].type.value}\n")
        for innovation in sorted(self.links):
            link = self.links[innovation]
            handle.write(
                f"gene {link.in_node_id} {link.out_node_id} {link.weight:g} "
                f"{int(link.recurrent)} {link.innovation} {int(link.enabled)}\n"
            )
        handle.write(f"genomeend {self.id}\n")

    def _rank_parents(
        self,
        other: Genome,
        fitness1: float,
        fitness2: float,
    ) -> tuple[Genome, Genome]:
        # Equal fitness favours the smaller genome.
        if fitness1 > fitness2:
            return self, other
        if fitness1 == fitness2 and self.size <= other.size:
            return self, other
        return other, self

    def _reaches(self, start: int, goal: int) -> bool:
        adjacency = self._phenotype or {}
        stack = [start]
        visited: set[int] = set()
        while stack:
            current = stack.pop()
            if current == goal:
                return True
            if current in visited:
                continue
            visited.add(current)
            stack.extend(adjacency.get(current, ()))
        return False

    def _mutate_toggle_enable(self, rng: Random) -> None:
        if not self.links:
            return
        link = self.links[rng.choice(sorted(self.links))]
        if link.enabled:
            # Never disable the only enabled link leaving a node.
            siblings = [
                other
                for other in self.links.values()
                if other.in_node_id == link.in_node_id
                and other.enabled
                and other.innovation != link.innovation
            ]
            if not siblings:
                return
        self.links[link.innovation] = link.toggled()
        self._phenotype = None

    def _mutate_gene_reenable(self) -> None:
        for innovation in sorted(self.links):
            link = self.links[innovation]
            if not link.enabled:
                self.links[innovation] = link.copy(enabled=True)
                self._phenotype = None
                return


def _split_present(genome: Genome, tracker: InnovationTracker, innovation: int) -> bool:
    split = tracker.peek_split(innovation)
    return split is not None and split.node_id in genome.nodes


def _inherit_enabled(
    first: LinkGene,
    second: LinkGene,
    rng: Random,
    disable_inherit_rate: float,
) -> bool:
    if first.enabled and second.enabled:
        return True
    return rng.random() >= disable_inherit_rate


def _assemble(
    genome_id: int,
    links: Iterable[LinkGene],
    parents: tuple[Genome, Genome],
) -> Genome:
    nodes: dict[int, NodeGene] = {}
    for parent in parents:
        for node_id, node in parent.nodes.items():
            if node.type is not NodeType.HIDDEN:
                nodes.setdefault(node_id, node)

    child_links: dict[int, LinkGene] = {}
    seen_pairs: set[tuple[int, int]] = set()
    for link in links:
        if link.endpoints in seen_pairs:
            continue
        for node_id in link.endpoints:
            if node_id not in nodes:
                source = parents[0].nodes.get(node_id) or parents[1].nodes[node_id]
                nodes[node_id] = source
        seen_pairs.add(link.endpoints)
        child_links[link.innovation] = link
    return Genome(id=genome_id, nodes=nodes, links=child_links)


__all__ = ["Genome", "GenomeLike", "WeightMutationMode"]
