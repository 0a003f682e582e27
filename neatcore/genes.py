"""Gene primitives (nodes and links) for the reference genome."""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from enum import Enum


class NodeType(str, Enum):
    """Role of a node in the encoded network."""

    INPUT = "input"
    BIAS = "bias"
    HIDDEN = "hidden"
    OUTPUT = "output"

    @property
    def is_sensor(self) -> bool:
        """Sensors feed the network and never receive links."""
        return self in (NodeType.INPUT, NodeType.BIAS)

    @classmethod
    def coerce(cls, value: NodeType | str) -> NodeType:
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            msg = f"Node type must be a NodeType or string, got {value!r}"
            raise TypeError(msg)
        labels = {member.value: member for member in cls}
        member = labels.get(value.lower())
        if member is None:
            msg = f"Unknown node type {value!r}; expected one of {sorted(labels)}"
            raise ValueError(msg)
        return member


def _require_non_negative(owner: str, **values: int) -> None:
    for label, value in values.items():
        if value < 0:
            msg = f"{owner}.{label} must be non-negative, got {value}"
            raise ValueError(msg)


def _finite_weight(value: object) -> float:
    try:
        weight = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as error:
        msg = f"Link weight must be a number, got {value!r}"
        raise ValueError(msg) from error
    if not math.isfinite(weight):
        msg = f"Link weight must be finite, got {weight}"
        raise ValueError(msg)
    return weight


@dataclass(frozen=True, slots=True)
class NodeGene:
    """A node of the genetic encoding."""

    id: int
    type: NodeType

    def __post_init__(self) -> None:
        _require_non_negative("NodeGene", id=self.id)
        object.__setattr__(self, "type", NodeType.coerce(self.type))


@dataclass(frozen=True, slots=True)
class LinkGene:
    """A weighted link between two nodes, keyed by its innovation number.

    Genes are immutable; mutation operators swap in modified copies.
    """

    innovation: int
    in_node_id: int
    out_node_id: int
    weight: float
    enabled: bool = True
    recurrent: bool = False

    def __post_init__(self) -> None:
        _require_non_negative(
            "LinkGene",
            innovation=self.innovation,
            in_node_id=self.in_node_id,
            out_node_id=self.out_node_id,
        )
        object.__setattr__(self, "weight", _finite_weight(self.weight))

    @property
    def endpoints(self) -> tuple[int, int]:
        return self.in_node_id, self.out_node_id

    def copy(
        self,
        *,
        weight: float | None = None,
        enabled: bool | None = None,
    ) -> LinkGene:
        """Return a copy with the weight and/or enabled flag replaced."""
        changes: dict[str, object] = {}
        if weight is not None:
            changes["weight"] = weight
        if enabled is not None:
            changes["enabled"] = enabled
        return replace(self, **changes)

    def toggled(self) -> LinkGene:
        return self.copy(enabled=not self.enabled)


__all__ = ["LinkGene", "NodeGene", "NodeType"]
