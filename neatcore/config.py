"""Configuration loading utilities for NEAT runs."""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigurationError

_PROBABILITIES = (
    "survival_thresh",
    "mutate_only_prob",
    "mutate_add_node_prob",
    "mutate_add_link_prob",
    "mutate_connect_sensors_prob",
    "mutate_link_weights_prob",
    "mutate_toggle_enable_prob",
    "mutate_gene_reenable_prob",
    "interspecies_mate_rate",
    "mate_multipoint_prob",
    "mate_multipoint_avg_prob",
    "mate_singlepoint_prob",
    "mate_only_prob",
    "disable_inherit_rate",
)

_ALIASES = {
    "population_size": "pop_size",
    "compatibility_threshold": "compat_threshold",
    "dropoff_age": "drop_off_age",
    "survival_threshold": "survival_thresh",
}


@dataclass(frozen=True, slots=True)
class NEATConfig:
    """Every tunable consumed by speciation, reproduction and the reference genome."""

    pop_size: int = 150
    drop_off_age: int = 15
    age_significance: float = 1.0
    survival_thresh: float = 0.2

    mutate_only_prob: float = 0.25
    mutate_add_node_prob: float = 0.03
    mutate_add_link_prob: float = 0.08
    mutate_connect_sensors_prob: float = 0.5
    mutate_link_weights_prob: float = 0.9
    mutate_toggle_enable_prob: float = 0.0
    mutate_gene_reenable_prob: float = 0.0
    weight_mut_power: float = 2.5

    interspecies_mate_rate: float = 0.001
    mate_multipoint_prob: float = 0.3
    mate_multipoint_avg_prob: float = 0.4
    mate_singlepoint_prob: float = 0.0
    mate_only_prob: float = 0.2
    disable_inherit_rate: float = 0.75

    compat_threshold: float = 3.0
    disjoint_coeff: float = 1.0
    excess_coeff: float = 1.0
    mutdiff_coeff: float = 0.4

    new_link_tries: int = 20
    allow_recurrent: bool = False
    num_inputs: int = 2
    num_outputs: int = 1

    max_generations: int = 100
    fitness_threshold: float = math.inf
    seed: int | None = None

    def __post_init__(self) -> None:
        if self.pop_size <= 0:
            msg = "pop_size must be positive."
            raise ConfigurationError(msg)
        if self.drop_off_age < 0:
            msg = "drop_off_age must be >= 0."
            raise ConfigurationError(msg)
        if self.age_significance < 0:
            msg = "age_significance must be >= 0."
            raise ConfigurationError(msg)
        for label in _PROBABILITIES:
            value = getattr(self, label)
            if not 0.0 <= value <= 1.0:
                msg = f"{label} must be in [0, 1]."
                raise ConfigurationError(msg)
        if self.weight_mut_power < 0:
            msg = "weight_mut_power must be >= 0."
            raise ConfigurationError(msg)
        # Zero is accepted here and rejected once reproduction needs it.
        if self.compat_threshold < 0:
            msg = "compat_threshold must be >= 0."
            raise ConfigurationError(msg)
        if min(self.disjoint_coeff, self.excess_coeff, self.mutdiff_coeff) < 0:
            msg = "Compatibility coefficients must be non-negative."
            raise ConfigurationError(msg)
        if self.new_link_tries <= 0:
            msg = "new_link_tries must be positive."
            raise ConfigurationError(msg)
        if self.num_inputs <= 0 or self.num_outputs <= 0:
            msg = "num_inputs and num_outputs must be positive."
            raise ConfigurationError(msg)
        if self.max_generations <= 0:
            msg = "max_generations must be positive."
            raise ConfigurationError(msg)


@dataclass(slots=True)
class RunConfig:
    """Bundle describing one command-line evolution run."""

    neat_config: Path
    fitness: str
    output_dir: Path = Path("runs")
    generations: int | None = None

    def resolve(self, base_path: Path) -> RunConfig:
        return RunConfig(
            neat_config=(base_path / self.neat_config).resolve(),
            fitness=self.fitness,
            output_dir=(base_path / self.output_dir).resolve(),
            generations=self.generations,
        )


def _load_yaml(path: Path) -> Mapping[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, Mapping):
        msg = f"Expected mapping in YAML file: {path}"
        raise ConfigurationError(msg)
    return data


_TRUE_WORDS = frozenset({"true", "yes", "on", "1"})
_FALSE_WORDS = frozenset({"false", "no", "off", "0"})


def _coerce_bool(value: object) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        word = value.strip().lower()
        if word in _TRUE_WORDS:
            return True
        if word in _FALSE_WORDS:
            return False
    msg = f"Expected a boolean, got {value!r}"
    raise ValueError(msg)


def _coerce(name: str, default: object, value: object) -> object:
    if value is None:
        return None
    if isinstance(default, bool):
        return _coerce_bool(value)
    if isinstance(default, int) or name == "seed":
        return int(value)  # type: ignore[arg-type]
    return float(value)  # type: ignore[arg-type]


def neat_config_from_mapping(data: Mapping[str, Any]) -> NEATConfig:
    """Build a config from snake-case keys, ignoring unknown entries."""
    normalized = {_ALIASES.get(key, key): value for key, value in data.items()}
    values: dict[str, object] = {}
    for config_field in fields(NEATConfig):
        if config_field.name not in normalized:
            continue
        try:
            values[config_field.name] = _coerce(
                config_field.name,
                config_field.default,
                normalized[config_field.name],
            )
        except (TypeError, ValueError) as error:
            msg = f"Invalid value for {config_field.name}: {normalized[config_field.name]!r}"
            raise ConfigurationError(msg) from error
    return NEATConfig(**values)  # type: ignore[arg-type]


def load_neat_config(path: Path) -> NEATConfig:
    return neat_config_from_mapping(_load_yaml(Path(path)))


def load_run_config(path: Path) -> RunConfig:
    path = Path(path)
    data = _load_yaml(path)
    neat_path = data.get("neat_config")
    fitness = data.get("fitness")
    if neat_path is None or fitness is None:
        msg = "run.yml must specify 'neat_config' and 'fitness' entries"
        raise ConfigurationError(msg)
    run = RunConfig(
        neat_config=Path(neat_path),
        fitness=str(fitness),
        output_dir=Path(data.get("output_dir", "runs")),
        generations=(
            int(data["generations"]) if data.get("generations") is not None else None
        ),
    )
    return run.resolve(path.parent)


__all__ = [
    "NEATConfig",
    "RunConfig",
    "load_neat_config",
    "load_run_config",
    "neat_config_from_mapping",
]
