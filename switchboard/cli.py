#!/usr/bin/env python3
"""
Switchboard CLI

Command-line access to the orchestration core:

    switchboard health [--refresh]
    switchboard skills
    switchboard run SKILL [--input FILE] [--var key=value ...] [--verify]
    switchboard raw PROMPT [--system S] [--domain D] [--backend B]
    switchboard batch TASKS.yaml
"""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from switchboard.config import CONFIG_ENV_VAR, DEFAULT_DOMAIN, SwitchboardConfig, load_config
from switchboard.errors import SwitchboardError
from switchboard.executor import SubagentExecutor
from switchboard.models import ExecuteOptions, GenerationRequest, SubagentTask
from switchboard.orchestrator import Orchestrator, skill_domain
from switchboard.registry import BackendRegistry
from switchboard.skills import SkillRegistry

logger = logging.getLogger("switchboard")

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_USAGE = 2


def build_orchestrator(config: SwitchboardConfig) -> Orchestrator:
    """Wire registry, skills, and orchestrator from a config."""
    registry = BackendRegistry.from_config(config)
    skills = SkillRegistry.load(config.skills_dir)
    return Orchestrator(registry, skills, config)


def parse_vars(pairs: List[str]) -> Dict[str, str]:
    """Parse key=value pairs from --var flags."""
    variables: Dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise ValueError(f"Invalid --var '{pair}': expected key=value")
        variables[key] = value
    return variables


def read_structured(source: str) -> Any:
    """Read YAML/JSON from a file path, or stdin when source is '-'."""
    text = sys.stdin.read() if source == "-" else Path(source).read_text(encoding="utf-8")
    # JSON is a subset of YAML
    return yaml.safe_load(text)


def emit(obj: Any) -> None:
    print(json.dumps(obj, indent=2, ensure_ascii=False, default=str))


async def cmd_health(orchestrator: Orchestrator, args: argparse.Namespace) -> int:
    if args.refresh:
        orchestrator.invalidate_all_health()
    summary = await orchestrator.registry.health_summary()
    summary["refreshed"] = bool(args.refresh)
    emit(summary)
    return EXIT_OK if summary["available_count"] else EXIT_ERROR


async def cmd_skills(orchestrator: Orchestrator, args: argparse.Namespace) -> int:
    emit([
        {
            "id": s.id,
            "name": s.name,
            "domain": skill_domain(s),
            "preferred_backend": s.preferred_backend,
            "description": s.description,
        }
        for s in orchestrator.skills.all()
    ])
    return EXIT_OK


async def cmd_run(orchestrator: Orchestrator, args: argparse.Namespace) -> int:
    variables: Dict[str, Any] = {}
    if args.input:
        data = read_structured(args.input)
        if not isinstance(data, dict):
            raise ValueError("Skill input must be a mapping of template variables")
        variables.update(data)
    variables.update(parse_vars(args.var))

    options = ExecuteOptions(
        backend_override=args.backend,
        timeout=args.timeout,
        verify=True if args.verify else None,
        verifier_count=args.verifiers,
        strict=args.strict,
    )
    if args.verify or args.verifiers:
        result = await orchestrator.execute_with_verification(args.skill, variables, options)
    else:
        result = await orchestrator.execute(args.skill, variables, options)
    emit(result.to_dict())
    return EXIT_OK


async def cmd_raw(orchestrator: Orchestrator, args: argparse.Namespace) -> int:
    prompt = sys.stdin.read() if args.prompt == "-" else args.prompt
    request = GenerationRequest(system_prompt=args.system or "", prompt=prompt, timeout=args.timeout)
    response = await orchestrator.execute_raw(request, args.domain, args.backend, strict=args.strict)
    emit(response.to_dict())
    return EXIT_OK


async def cmd_batch(orchestrator: Orchestrator, args: argparse.Namespace) -> int:
    data = read_structured(args.file)
    if isinstance(data, dict):
        data = data.get("tasks", [])
    if not isinstance(data, list):
        raise ValueError("Batch file must be a list of tasks or a mapping with 'tasks'")
    tasks = [SubagentTask.from_dict(d) for d in data]
    batch = await SubagentExecutor(orchestrator).run(tasks)
    emit(batch.to_dict())
    return EXIT_OK if batch.failure_count == 0 else EXIT_ERROR


COMMANDS = {
    "health": cmd_health,
    "skills": cmd_skills,
    "run": cmd_run,
    "raw": cmd_raw,
    "batch": cmd_batch,
}


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="switchboard", description="Multi-backend AI orchestration")
    ap.add_argument(
        "--config", type=Path, default=None,
        help=f"Config YAML (default: ${CONFIG_ENV_VAR})"
    )
    ap.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    sub = ap.add_subparsers(dest="command", required=True)

    health = sub.add_parser("health", help="Show backend health")
    health.add_argument("--refresh", action="store_true", help="Drop cached health first")

    sub.add_parser("skills", help="List registered skills")

    run = sub.add_parser("run", help="Execute a skill")
    run.add_argument("skill", help="Skill id (e.g. classify-news)")
    run.add_argument("--input", "-i", help="YAML/JSON file of template variables ('-' for stdin)")
    run.add_argument("--var", action="append", default=[], help="Template variable key=value")
    run.add_argument("--backend", "-b", help="Override the backend (claude, gemini, codex)")
    run.add_argument("--timeout", type=float, help="Per-call timeout in seconds")
    run.add_argument("--verify", action="store_true", help="Cross-verify with other backends")
    run.add_argument("--verifiers", type=int, help="Number of verifier backends")
    run.add_argument("--strict", action="store_true", help="Fail if no backend is healthy")

    raw = sub.add_parser("raw", help="Execute a free-form prompt")
    raw.add_argument("prompt", help="Prompt text ('-' for stdin)")
    raw.add_argument("--system", "-s", help="System instructions")
    raw.add_argument("--domain", "-d", default=DEFAULT_DOMAIN, help="Task domain for the fallback chain")
    raw.add_argument("--backend", "-b", help="Override the backend")
    raw.add_argument("--timeout", type=float, help="Timeout in seconds")
    raw.add_argument("--strict", action="store_true", help="Fail if no backend is healthy")

    batch = sub.add_parser("batch", help="Run a batch of tasks in parallel")
    batch.add_argument("file", help="YAML/JSON task list ('-' for stdin)")

    return ap


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="[%(asctime)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )

    try:
        config = load_config(args.config)
        orchestrator = build_orchestrator(config)
        return asyncio.run(COMMANDS[args.command](orchestrator, args))
    except SwitchboardError as e:
        logger.error(str(e))
        return EXIT_ERROR
    except (OSError, KeyError, ValueError, yaml.YAMLError) as e:
        logger.error(f"{args.command}: {e}")
        return EXIT_USAGE
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        return EXIT_ERROR


if __name__ == "__main__":
    raise SystemExit(main())
