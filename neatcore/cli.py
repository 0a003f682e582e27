"""Command-line interface for NEAT evolution runs."""

from __future__ import annotations

import argparse
import importlib
import sys
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

from loguru import logger

from .config import NEATConfig, RunConfig, load_neat_config, load_run_config
from .errors import ConfigurationError
from .reporters import EventLogger, write_population_report
from .training import run_evolution


def _load_bundle(config_path: Path) -> tuple[RunConfig, NEATConfig]:
    run_config = load_run_config(config_path)
    neat_config = load_neat_config(run_config.neat_config)
    return run_config, neat_config


def resolve_fitness(reference: str) -> Callable[..., float]:
    """Import a `package.module:function` fitness reference."""
    module_name, sep, attribute = reference.partition(":")
    if not sep or not module_name or not attribute:
        msg = f"Fitness reference must look like 'module:function', got {reference!r}"
        raise ConfigurationError(msg)
    module = importlib.import_module(module_name)
    try:
        function = getattr(module, attribute)
    except AttributeError as error:
        msg = f"Module {module_name!r} has no attribute {attribute!r}"
        raise ConfigurationError(msg) from error
    if not callable(function):
        msg = f"Fitness reference {reference!r} is not callable"
        raise ConfigurationError(msg)
    return function


def _allocate_run_dir(output_root: Path) -> Path:
    output_root.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
    candidate = output_root / timestamp
    suffix = 1
    while candidate.exists():
        candidate = output_root / f"{timestamp}_{suffix:02d}"
        suffix += 1
    candidate.mkdir(parents=True, exist_ok=False)
    return candidate


def _cmd_evolve(args: argparse.Namespace) -> int:
    config_path = Path(args.config)
    run_config, neat_config = _load_bundle(config_path)
    fitness_fn = resolve_fitness(run_config.fitness)

    if args.dry_run:
        print("[evolve] configuration validated")
        print(f"  neat_config: {run_config.neat_config}")
        print(f"  fitness: {run_config.fitness}")
        print(f"  pop_size: {neat_config.pop_size}")
        print(f"  compat_threshold: {neat_config.compat_threshold}")
        return 0

    logger.enable("neatcore")
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if args.verbose else "INFO")

    run_dir = _allocate_run_dir(run_config.output_dir)
    print(f"[evolve] run directory: {run_dir}")
    with EventLogger(run_dir / "events.log") as events:
        events.log(f"Evolution started with {run_config.neat_config}")
        result = run_evolution(
            neat_config,
            fitness_fn,
            generations=run_config.generations,
            events=events,
        )
        events.log(
            f"Finished after {result.generations} generations "
            f"(best={result.best_fitness:.3f}, solved={result.solved})."
        )

    with (run_dir / "species.txt").open("w", encoding="utf-8") as handle:
        write_population_report(handle, result.population.species)

    print(
        f"Finished after {result.generations} generations: "
        f"best fitness {result.best_fitness:.3f}"
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="neatcore",
        description="NEAT speciation and reproduction command-line interface",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    evolve = subparsers.add_parser(
        "evolve",
        help="Run evolution using a YAML run configuration",
    )
    evolve.add_argument(
        "--config",
        required=True,
        help="Path to run configuration YAML",
    )
    evolve.add_argument(
        "--dry-run",
        action="store_true",
        help="Validate configuration without evolving",
    )
    evolve.add_argument(
        "--verbose",
        action="store_true",
        help="Log every reproduction decision",
    )
    evolve.set_defaults(func=_cmd_evolve)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    result = args.func(args)
    return int(result)


if __name__ == "__main__":  # pragma: no cover - entry point
    raise SystemExit(main())
