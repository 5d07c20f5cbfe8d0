#!/usr/bin/env python3
"""
Switchboard Skill Registry

Skills are YAML definition files: a system prompt, a prompt template with
{{variable}} placeholders, an output schema, and generation defaults.
Built-in skills ship in switchboard/templates/; a config may add a directory.
"""
from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional

import yaml

from switchboard.errors import UnknownSkillError
from switchboard.models import Skill

logger = logging.getLogger("switchboard.skills")

BUILTIN_SKILLS_DIR = Path(__file__).parent / "templates"
PLACEHOLDER_PATTERN = re.compile(r"\{\{(\w+)\}\}")
VERIFY_SKILL_ID = "verify-analysis"


def render_prompt(template: str, variables: Mapping[str, Any]) -> str:
    """Substitute {{name}} placeholders.

    Missing or None values leave the placeholder verbatim. Strings are
    inserted as-is; anything else as indented JSON.
    """
    def substitute(match: "re.Match[str]") -> str:
        value = variables.get(match.group(1))
        if value is None:
            return match.group(0)
        if isinstance(value, str):
            return value
        return json.dumps(value, indent=2, ensure_ascii=False, default=str)

    return PLACEHOLDER_PATTERN.sub(substitute, template)


def template_variables(template: str) -> List[str]:
    """Placeholder names in order of first appearance."""
    seen: List[str] = []
    for name in PLACEHOLDER_PATTERN.findall(template):
        if name not in seen:
            seen.append(name)
    return seen


def load_skills(skills_dir: Path) -> List[Skill]:
    """Load skill definitions from YAML files in a directory."""
    skills: List[Skill] = []
    if not skills_dir.exists():
        logger.error(f"Skills directory not found: {skills_dir}")
        return skills

    for yaml_file in sorted(skills_dir.glob("*.yaml")):
        try:
            data = yaml.safe_load(yaml_file.read_text(encoding="utf-8"))
            if not isinstance(data, dict):
                logger.error(f"Skill file is empty or invalid: {yaml_file}")
                continue
            skills.append(Skill.from_dict(data))
        except (yaml.YAMLError, KeyError, TypeError, ValueError) as e:
            # Malformed skill files are configuration problems
            logger.error(f"Failed to load skill from {yaml_file}: {e}")

    logger.debug(f"Loaded {len(skills)} skills from {skills_dir}")
    return skills


class SkillRegistry:
    """Read-only lookup of skills by id."""

    def __init__(self, skills: Iterable[Skill]):
        self._skills: Dict[str, Skill] = {}
        for skill in skills:
            if skill.id in self._skills:
                logger.warning(f"Skill '{skill.id}' redefined, later definition wins")
            self._skills[skill.id] = skill

    @classmethod
    def load(cls, extra_dir: Optional[Path] = None) -> "SkillRegistry":
        """Built-in skills, overlaid with any skills in extra_dir."""
        skills = load_skills(BUILTIN_SKILLS_DIR)
        if extra_dir is not None:
            skills += load_skills(extra_dir)
        return cls(skills)

    def get(self, skill_id: str) -> Skill:
        skill = self._skills.get(skill_id)
        if skill is None:
            raise UnknownSkillError(skill_id, self._skills)
        return skill

    def has(self, skill_id: str) -> bool:
        return skill_id in self._skills

    def ids(self) -> List[str]:
        return list(self._skills)

    def all(self) -> List[Skill]:
        return list(self._skills.values())

    def __len__(self) -> int:
        return len(self._skills)
