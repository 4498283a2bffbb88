"""
svgnft_deploy.deploy
====================

Tagged deploy scripts and the runner, hardhat-deploy style: scripts run in a
fixed order and a run selects them by tag.

    order  script  tags
    0      mocks   all, mocks   (local chain only)
    1      svg     all, svg
    2      rsvg    all, rsvg

Typical usage
-------------
    from svgnft_deploy.config import Settings
    from svgnft_deploy.deploy import DeployEnv, run_deploy_scripts

    env = DeployEnv.from_settings(Settings.from_env())
    run_deploy_scripts(env, tags=["all"], on_run=lambda run: print(run.summary()))
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from ..orchestrator import WorkflowResult
from . import mocks, random_svg, svg_nft
from .env import DEFAULT_SVG, DeployEnv

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeployScript:
    name: str
    order: int
    tags: Tuple[str, ...]
    func: Callable[[DeployEnv], Any]


@dataclass(frozen=True)
class ScriptRun:
    script: str
    result: Any

    def summary(self) -> Dict[str, Any]:
        if isinstance(self.result, WorkflowResult):
            return {"script": self.script, **self.result.to_dict()}
        return {
            "script": self.script,
            "deployments": {r.name: r.address for r in (self.result or ())},
        }


SCRIPTS: Tuple[DeployScript, ...] = (
    DeployScript("mocks", 0, mocks.TAGS, mocks.run),
    DeployScript("svg", 1, svg_nft.TAGS, svg_nft.run),
    DeployScript("rsvg", 2, random_svg.TAGS, random_svg.run),
)


def select_scripts(tags: Iterable[str]) -> List[DeployScript]:
    wanted = set(tags)
    unknown = wanted - {t for s in SCRIPTS for t in s.tags}
    if unknown:
        raise ValueError(f"unknown deploy tag(s): {', '.join(sorted(unknown))}")
    return sorted((s for s in SCRIPTS if wanted & set(s.tags)), key=lambda s: s.order)


def run_deploy_scripts(
    env: DeployEnv,
    tags: Iterable[str] = ("all",),
    *,
    on_run: Optional[Callable[[ScriptRun], None]] = None,
) -> List[ScriptRun]:
    """
    Run every script tagged with one of `tags`, in order.

    `on_run` sees each ScriptRun as soon as its script finishes, so a later
    failure does not hide the work already done.

    The network profile is resolved first; a chain without a profile fails
    before any script runs.
    """
    scripts = select_scripts(tags)
    profile = env.network
    log.info("running %s on %s (chainId=%d)", ", ".join(s.name for s in scripts) or "nothing", profile.name, env.chain_id)
    runs: List[ScriptRun] = []
    for script in scripts:
        log.info("-------------------------------")
        log.info("script %s", script.name)
        run = ScriptRun(script.name, script.func(env))
        runs.append(run)
        if on_run is not None:
            on_run(run)
    return runs


run_deployment = run_deploy_scripts


__all__ = [
    "DEFAULT_SVG",
    "DeployEnv",
    "DeployScript",
    "SCRIPTS",
    "ScriptRun",
    "run_deploy_scripts",
    "run_deployment",
    "select_scripts",
]
