#!/usr/bin/env python3
"""
Switchboard Configuration Loading

Load orchestrator settings from a YAML file. Every field has a default, so
running without a config file is valid.
"""
from __future__ import annotations

import dataclasses
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from switchboard.errors import ConfigError
from switchboard.models import DEFAULT_TIMEOUT_SECONDS, FallbackChain

logger = logging.getLogger("switchboard.config")

CONFIG_ENV_VAR = "SWITCHBOARD_CONFIG"
DEFAULT_DOMAIN = "forum"

DEFAULT_FALLBACK_CHAINS: Dict[str, FallbackChain] = {
    "sentinel": FallbackChain("gemini", ("claude", "codex")),
    "scout": FallbackChain("codex", ("claude", "gemini")),
    "librarian": FallbackChain("gemini", ("claude", "codex")),
    "strategist": FallbackChain("claude", ("gemini", "codex")),
    "forum": FallbackChain("claude", ("gemini", "codex")),
}


@dataclasses.dataclass(frozen=True)
class VerificationConfig:
    """Cross-verification default for a skill or domain."""
    enabled: bool = False
    verifiers: int = 1

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "VerificationConfig":
        return cls(
            enabled=bool(d.get("enabled", False)),
            verifiers=int(d.get("verifiers", 1)),
        )


DISABLED_VERIFICATION = VerificationConfig(enabled=False, verifiers=0)

DEFAULT_VERIFICATION: Dict[str, VerificationConfig] = {
    "scout": VerificationConfig(enabled=True, verifiers=1),
    "strategist": VerificationConfig(enabled=True, verifiers=2),
}


@dataclasses.dataclass
class SwitchboardConfig:
    """Orchestrator settings."""
    default_timeout: float = DEFAULT_TIMEOUT_SECONDS
    verify_timeout: float = 90.0
    health_ttl: float = 300.0
    health_timeout: float = 10.0
    degraded_latency: float = 8.0
    kill_grace: float = 5.0
    skills_dir: Optional[Path] = None
    fallback_chains: Dict[str, FallbackChain] = dataclasses.field(
        default_factory=lambda: dict(DEFAULT_FALLBACK_CHAINS)
    )
    verification: Dict[str, VerificationConfig] = dataclasses.field(
        default_factory=lambda: dict(DEFAULT_VERIFICATION)
    )

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "SwitchboardConfig":
        defaults = cls()

        # File entries extend the built-in tables rather than replacing them
        chains = dict(DEFAULT_FALLBACK_CHAINS)
        for domain, chain_data in (d.get("fallback_chains") or {}).items():
            chains[domain] = FallbackChain.from_dict(chain_data)

        verification = dict(DEFAULT_VERIFICATION)
        for key, verify_data in (d.get("verification") or {}).items():
            verification[key] = VerificationConfig.from_dict(verify_data or {})

        skills_dir = d.get("skills_dir")
        return cls(
            default_timeout=float(d.get("default_timeout", defaults.default_timeout)),
            verify_timeout=float(d.get("verify_timeout", defaults.verify_timeout)),
            health_ttl=float(d.get("health_ttl", defaults.health_ttl)),
            health_timeout=float(d.get("health_timeout", defaults.health_timeout)),
            degraded_latency=float(d.get("degraded_latency", defaults.degraded_latency)),
            kill_grace=float(d.get("kill_grace", defaults.kill_grace)),
            skills_dir=Path(skills_dir).expanduser() if skills_dir else None,
            fallback_chains=chains,
            verification=verification,
        )


def load_config(path: Optional[Path] = None) -> SwitchboardConfig:
    """Load config from path, or $SWITCHBOARD_CONFIG, or defaults."""
    if path is None:
        env_path = os.environ.get(CONFIG_ENV_VAR)
        path = Path(env_path) if env_path else None
    if path is None:
        return SwitchboardConfig()
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")

    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        logger.warning(f"Config file is empty, using defaults: {path}")
        return SwitchboardConfig()
    if not isinstance(data, dict):
        raise ConfigError(f"Config must be a mapping, got {type(data).__name__}: {path}")

    try:
        config = SwitchboardConfig.from_dict(data)
    except (KeyError, TypeError, ValueError) as e:
        raise ConfigError(f"Invalid config in {path}: {e}") from e

    # Relative skills_dir is relative to the config file
    if config.skills_dir is not None and not config.skills_dir.is_absolute():
        config.skills_dir = path.parent / config.skills_dir
    logger.info(f"Loaded config from {path}")
    return config
