"""Speciation and reproduction engine for NEAT neuroevolution."""

from __future__ import annotations

from loguru import logger

from .config import (
    NEATConfig,
    RunConfig,
    load_neat_config,
    load_run_config,
    neat_config_from_mapping,
)
from .errors import ConfigurationError, ConsistencyError, GenomeError, NeatError
from .genes import LinkGene, NodeGene, NodeType
from .genome import Genome, GenomeLike, WeightMutationMode
from .innovations import InnovationTracker, NodeSplit
from .organism import Organism
from .population import Population
from .reporters import EventLogger, write_population_report, write_species_report
from .reproduction import (
    assign_expected_offspring,
    count_species_offspring,
    place_organism,
    reproduce,
    select_rank_biased,
)
from .species import Species, sort_by_max_fitness, sort_by_original_fitness
from .training import EvolutionResult, run_evolution

# Library logging stays silent until an application enables it.
logger.disable(__name__)

__all__ = [
    "ConfigurationError",
    "ConsistencyError",
    "GenomeError",
    "NeatError",
    "NEATConfig",
    "RunConfig",
    "load_neat_config",
    "load_run_config",
    "neat_config_from_mapping",
    "LinkGene",
    "NodeGene",
    "NodeType",
    "Genome",
    "GenomeLike",
    "WeightMutationMode",
    "InnovationTracker",
    "NodeSplit",
    "Organism",
    "Species",
    "sort_by_max_fitness",
    "sort_by_original_fitness",
    "Population",
    "assign_expected_offspring",
    "count_species_offspring",
    "place_organism",
    "reproduce",
    "select_rank_biased",
    "EventLogger",
    "write_population_report",
    "write_species_report",
    "EvolutionResult",
    "run_evolution",
]
