"""Innovation bookkeeping shared by every genome of a population."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

InnovationKey = tuple[int, int]


@dataclass(frozen=True, slots=True)
class NodeSplit:
    """Structural innovation created by splitting a link with a new node.

    Attributes:
        node_id: Identifier of the inserted hidden node.
        in_innovation: Innovation of the link entering the new node.
        out_innovation: Innovation of the link leaving the new node.
    """

    node_id: int
    in_innovation: int
    out_innovation: int


@dataclass(slots=True)
class InnovationTracker:
    """Assigns stable innovation and node identifiers for structural mutations."""

    next_innovation: int = 0
    next_node_id: int = 0
    _links: dict[InnovationKey, int] = field(
        default_factory=dict,
        init=False,
        repr=False,
    )
    _splits: dict[int, NodeSplit] = field(
        default_factory=dict,
        init=False,
        repr=False,
    )

    def __post_init__(self) -> None:
        if self.next_innovation < 0:
            msg = "next_innovation must be non-negative."
            raise ValueError(msg)
        if self.next_node_id < 0:
            msg = "next_node_id must be non-negative."
            raise ValueError(msg)

    def register(self, in_node_id: int, out_node_id: int) -> int:
        """Register a link and return its innovation identifier.

        Re-registering the same pair returns the original identifier, so two
        genomes growing the same link independently stay aligned.
        """
        key = (in_node_id, out_node_id)
        for label, value in (("in_node_id", in_node_id), ("out_node_id", out_node_id)):
            if value < 0:
                msg = f"{label} must be non-negative."
                raise ValueError(msg)
        existing = self._links.get(key)
        if existing is not None:
            return existing

        innovation = self.next_innovation
        self._links[key] = innovation
        self.next_innovation += 1
        return innovation

    def reserve_nodes(self, node_ids: Iterable[int]) -> None:
        """Make sure freshly allocated node ids never collide with `node_ids`."""
        for node_id in node_ids:
            if node_id >= self.next_node_id:
                self.next_node_id = node_id + 1

    def split(self, innovation: int, in_node_id: int, out_node_id: int) -> NodeSplit:
        """Return the node split for a link, creating it on first use."""
        existing = self._splits.get(innovation)
        if existing is not None:
            return existing

        node_id = self.next_node_id
        self.next_node_id += 1
        record = NodeSplit(
            node_id=node_id,
            in_innovation=self.register(in_node_id, node_id),
            out_innovation=self.register(node_id, out_node_id),
        )
        self._splits[innovation] = record
        return record

    def peek_split(self, innovation: int) -> NodeSplit | None:
        """Return the recorded split of a link, if any."""
        return self._splits.get(innovation)


__all__ = ["InnovationKey", "InnovationTracker", "NodeSplit"]
