from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Any

import click
from loguru import logger
from pydantic import ValidationError

from alignment_vault.core.config import get_vault_settings, load_config
from alignment_vault.simulation.scenario import ScenarioConfig, run_scenario


def _echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


@click.group(name="alignment-vault", help="Alignment vault simulator and tools.")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Path to config.json (defaults to ALIGNMENT_VAULT_CONFIG_PATH or ./config.json).",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    show_default=True,
)
def cli(config_path: Path | None, log_level: str) -> None:
    logger.remove()
    logger.add(sys.stderr, level=str(log_level).upper())
    load_config(config_path, require_exists=config_path is not None)


@cli.command(name="simulate", help="Replay a scenario against a simulated chain.")
@click.argument(
    "scenario_json", type=click.Path(exists=True, dir_okay=False, path_type=Path)
)
def simulate_cmd(scenario_json: Path) -> None:
    try:
        raw = json.loads(scenario_json.read_text())
    except json.JSONDecodeError as exc:
        raise click.BadParameter(f"not valid JSON: {exc}") from exc
    try:
        if "settings" not in raw:
            raw["settings"] = get_vault_settings().model_dump()
        cfg = ScenarioConfig.model_validate(raw)
    except ValidationError as exc:
        raise click.BadParameter(str(exc)) from exc
    _echo_json(asyncio.run(run_scenario(cfg)))


@cli.command(name="settings", help="Print the effective vault settings.")
def settings_cmd() -> None:
    try:
        settings = get_vault_settings()
    except ValidationError as exc:
        _echo_json({"ok": False, "error": "invalid_settings", "details": exc.errors()})
        raise SystemExit(1) from exc
    _echo_json({"ok": True, "result": settings.model_dump()})


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
