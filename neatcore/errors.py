"""Exception hierarchy for the speciation and reproduction engine."""

from __future__ import annotations


class NeatError(Exception):
    """Base for all neatcore exceptions."""


class ConfigurationError(NeatError, ValueError):
    """Configuration that makes a reproduction pass impossible."""


class ConsistencyError(NeatError, RuntimeError):
    """Broken bookkeeping invariant, signals a caller bug."""


class GenomeError(NeatError):
    """Failure surfaced by a genome mutation or crossover operator."""


__all__ = ["ConfigurationError", "ConsistencyError", "GenomeError", "NeatError"]
