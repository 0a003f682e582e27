"""Text reports and event logging for long-running evolution sessions."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path
from typing import TextIO

from .species import Species


def write_species_report(handle: TextIO, species: Species) -> None:
    """Write one species block followed by every member's genome dump."""
    handle.write(
        f"/* Species #{species.id} : (Size {species.size}) "
        f"(AF {species.avg_fitness:.3f}) (Age {species.age})  */\n"
    )
    for organism in species.organisms:
        handle.write(
            f"/* Organism #{organism.genome.id} Fitness: {organism.fitness:.3f} "
            f"Error: {organism.error:.3f} */\n"
        )
        if organism.is_winner:
            handle.write(
                f"/* ##------$ WINNER {organism.genome.id} "
                f"SPECIES # {species.id} $------## */\n"
            )
        organism.genome.write(handle)


def write_population_report(handle: TextIO, species: Iterable[Species]) -> None:
    for item in species:
        write_species_report(handle, item)


class EventLogger:
    """Append-only text logger with ISO timestamps."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._handle = self._path.open("a", encoding="utf-8")

    def __enter__(self) -> EventLogger:
        return self

    def __exit__(self, exc_type, exc, exc_tb) -> None:
        self.close()

    def log(self, message: str) -> None:
        """Append a timestamped message to the log."""
        timestamp = datetime.now(timezone.utc).isoformat()
        self._handle.write(f"{timestamp} {message}\n")
        self._handle.flush()

    def close(self) -> None:
        if not self._handle.closed:
            self._handle.close()

    @property
    def path(self) -> Path:
        return self._path


__all__ = ["EventLogger", "write_population_report", "write_species_report"]
