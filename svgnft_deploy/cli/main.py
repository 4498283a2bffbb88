"""
svgnft_deploy.cli.main
======================

`svgnft-deploy`: run the SVG NFT deploy scripts against a JSON-RPC node.

Examples
--------
    $ svgnft-deploy version
    $ svgnft-deploy --rpc http://127.0.0.1:8545 accounts
    $ svgnft-deploy deploy                       # mocks (local only), svg, rsvg
    $ svgnft-deploy deploy --tags rsvg --tags mocks
    $ svgnft-deploy --network rinkeby deploy --tags svg --svg ./img/circle.svg

Configuration
-------------
- RPC URL     : `--rpc` or env `SVGNFT_RPC_URL` (default: http://127.0.0.1:8545)
- Network     : `--network` or env `SVGNFT_NETWORK` (must match the node's chain id)
- Config file : `--config` or env `SVGNFT_CONFIG_FILE` (JSON or YAML)
- Log level   : `--log-level` or env `SVGNFT_LOG_LEVEL` (default: INFO)

Every other knob is read from SVGNFT_* variables; see svgnft_deploy.config.
"""

from __future__ import annotations

import json
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, NoReturn, Optional

import click
import typer

from ..config import Settings
from ..deploy import DeployEnv, run_deploy_scripts, select_scripts
from ..errors import DeployError
from ..networks import load_network_table
from ..rpc.http import RpcClient
from ..version import __version__, version as version_string

log = logging.getLogger(__name__)

app = typer.Typer(
    name="svgnft-deploy",
    help="Deploy and mint the SVGNFT / RandomSVG contracts.",
    no_args_is_help=True,
    add_completion=False,
)

__all__ = ["app", "main"]


@dataclass
class Ctx:
    settings: Settings


def _print_json(obj: Any, *, indent: Optional[int] = 2) -> None:
    typer.echo(json.dumps(obj, indent=indent, ensure_ascii=False, default=str))


def _fail(e: Exception) -> NoReturn:
    typer.echo(f"error: {e}", err=True)
    raise typer.Exit(code=1)


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.callback()
def _root(
    ctx: typer.Context,
    rpc: Optional[str] = typer.Option(None, "--rpc", help="Node HTTP JSON-RPC URL.", envvar="SVGNFT_RPC_URL"),
    network: Optional[str] = typer.Option(None, "--network", help="Network name from the network table.", envvar="SVGNFT_NETWORK"),
    config: Optional[Path] = typer.Option(None, "--config", help="Settings file (JSON or YAML).", envvar="SVGNFT_CONFIG_FILE"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="DEBUG, INFO, WARNING or ERROR.", envvar="SVGNFT_LOG_LEVEL"),
) -> None:
    """
    Resolve settings (defaults < config file < SVGNFT_* env < flags) for this process.
    """
    try:
        base = Settings.from_env(config_file=str(config) if config else None)
        settings = Settings.with_overrides(base, rpc_url=rpc, network=network, log_level=log_level)
    except (OSError, ValueError) as e:
        raise typer.BadParameter(str(e)) from e
    _setup_logging(settings.log_level)
    log.debug("settings: %s", settings.public_dict())
    ctx.obj = Ctx(settings=settings)


def _client(ctx: typer.Context) -> RpcClient:
    s: Settings = ctx.obj.settings
    return RpcClient(s.rpc_url, timeout=s.http_timeout, max_retries=s.max_retries)


@app.command("version")
def version() -> None:
    """Print the package version."""
    typer.echo(f"svgnft-deploy {version_string()}")


@app.command("env")
def env(ctx: typer.Context) -> None:
    """Show the effective settings (secrets masked)."""
    _print_json({**ctx.obj.settings.public_dict(), "version": __version__})


@app.command("networks")
def networks(ctx: typer.Context) -> None:
    """List the network table."""
    try:
        table = load_network_table(ctx.obj.settings.networks_file)
    except (OSError, ValueError) as e:
        _fail(e)
    _print_json({str(cid): body for cid, body in table.to_dict().items()})


@app.command("accounts")
def accounts(ctx: typer.Context) -> None:
    """Print the accounts the node manages."""
    try:
        with _client(ctx) as rpc:
            for address in rpc.accounts():
                typer.echo(address)
    except DeployError as e:
        _fail(e)


@app.command("deploy")
def deploy(
    ctx: typer.Context,
    tags: Optional[List[str]] = typer.Option(None, "--tags", "-t", help="Run scripts with these tags (repeatable). Default: all."),
    svg: Optional[Path] = typer.Option(None, "--svg", help="SVG file to mint with SVGNFT (default: bundled triangle)."),
    no_save: bool = typer.Option(False, "--no-save", help="Keep deployment records in memory only."),
) -> None:
    """
    Run the deploy scripts; prints one JSON line as each script finishes.
    """
    settings: Settings = ctx.obj.settings
    if no_save:
        settings = Settings.with_overrides(settings, save_deployments=False)
    if svg is not None and not svg.is_file():
        raise typer.BadParameter(f"SVG file not found: {svg}", param_hint="--svg")
    wanted = tags or ["all"]
    try:
        select_scripts(wanted)
    except ValueError as e:
        raise typer.BadParameter(str(e), param_hint="--tags") from e
    try:
        env = DeployEnv.from_settings(settings, svg_path=svg)
        run_deploy_scripts(env, wanted, on_run=lambda run: _print_json(run.summary(), indent=None))
    except (DeployError, OSError, ValueError) as e:
        _fail(e)


def main(argv: Optional[list[str]] = None) -> int:
    """
    Run the CLI. Returns an integer exit code.
    """
    try:
        rv = app(prog_name="svgnft-deploy", standalone_mode=False, args=argv)
    except typer.Exit as e:
        return int(e.exit_code)
    except click.ClickException as e:  # usage errors: bad flags, unknown tags
        e.show()
        return e.exit_code
    except Exception as e:
        typer.echo(f"error: {e}", err=True)
        return 1
    return rv if isinstance(rv, int) else 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
