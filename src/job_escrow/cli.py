#!/usr/bin/env python3
"""
Job escrow command line.

Replays YAML scenarios against an in-memory ledger, checks fixture files
generated by the test suite, and prints agreement digests.
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Optional

import click
import yaml

from .config import LOG_FORMAT, EngineConfig
from .digest import compute_agreement_digest
from .replay import check_fixture_file, find_fixture_files
from .scenario import ScenarioError, load_scenario, run_scenario
from .yaml_dump import dump_yaml

logger = logging.getLogger(__name__)


def _configure_logging(config: EngineConfig, verbose: bool) -> None:
    level = logging.DEBUG if verbose else getattr(logging, config.log_level, logging.INFO)
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger().setLevel(level)


@click.group()
@click.option("--verbose", is_flag=True, help="Enable verbose output")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    envvar="JOB_ESCROW_CONFIG",
    help="YAML config file (default: JOB_ESCROW_* environment variables)",
)
@click.pass_context
def main(ctx: click.Context, verbose: bool, config_path: Optional[Path]) -> None:
    """Job escrow tooling."""
    if config_path is not None:
        try:
            config = EngineConfig.from_yaml(config_path)
        except (ValueError, yaml.YAMLError) as exc:
            raise click.BadParameter(str(exc), param_hint="--config") from exc
    else:
        config = EngineConfig.from_env()
    _configure_logging(config, verbose)
    ctx.obj = config


@main.command()
@click.argument("scenario", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--format",
    "fmt",
    type=click.Choice(["json", "yaml"]),
    default="yaml",
    show_default=True,
    help="Report output format",
)
@click.option("--start-time", default=0, show_default=True, help="Initial clock reading")
@click.pass_obj
def run(config: EngineConfig, scenario: Path, fmt: str, start_time: int) -> None:
    """Replay a YAML scenario and print the resulting report."""
    try:
        data = load_scenario(scenario)
        report = run_scenario(
            data, start_time=start_time, default_period=config.confirmation_period
        )
    except ScenarioError as exc:
        raise click.ClickException(str(exc)) from exc

    out = report.to_json()
    if fmt == "json":
        click.echo(json.dumps(out, indent=2))
    else:
        click.echo(dump_yaml(out), nl=False)

    if report.mismatches:
        logger.error(f"{len(report.mismatches)} step(s) did not match expectations")
        sys.exit(1)


@main.command()
@click.argument(
    "fixtures",
    required=False,
    type=click.Path(exists=True, path_type=Path),
)
@click.pass_obj
def consume(config: EngineConfig, fixtures: Optional[Path]) -> None:
    """Replay fixture cases and report mismatches."""
    root = fixtures or (Path(config.fixture_dir) if config.fixture_dir else None)
    if root is None:
        raise click.UsageError("no fixture path given and JOB_ESCROW_FIXTURE_DIR is unset")

    files = find_fixture_files(root)
    if not files:
        logger.error(f"No fixture files found in {root}")
        sys.exit(1)
    logger.info(f"Found {len(files)} fixture files")

    failures: list[str] = []
    for path in files:
        failures.extend(check_fixture_file(path))

    if failures:
        for f in failures:
            click.echo(f"FAIL {f}")
        sys.exit(1)

    click.echo("All fixtures passed")


@main.command()
@click.argument("agreement", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def digest(agreement: Path) -> None:
    """Print the digest of an agreement JSON file."""
    data = json.loads(agreement.read_text())
    click.echo(compute_agreement_digest(data))


if __name__ == "__main__":
    main()
