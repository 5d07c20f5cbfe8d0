"""
Tests for skill loading and prompt rendering
============================================
"""

import pytest

from switchboard.errors import UnknownSkillError
from switchboard.skills import (
    VERIFY_SKILL_ID,
    SkillRegistry,
    load_skills,
    render_prompt,
    template_variables,
)

BUILTIN_IDS = {
    "analyze-technicals",
    "chat-response",
    "classify-news",
    "discover-knowledge",
    "generate-recommendations",
    "macro-synthesis",
    "scenario-planning",
    "summarize-context",
    "verify-analysis",
}


class TestRenderPrompt:
    """Test {{variable}} substitution."""

    def test_strings_inserted_verbatim(self):
        assert render_prompt("Hello {{name}}!", {"name": "Ada"}) == "Hello Ada!"

    def test_non_strings_as_indented_json(self):
        rendered = render_prompt("Data: {{data}}", {"data": {"a": [1, 2]}})
        assert rendered == 'Data: {\n  "a": [\n    1,\n    2\n  ]\n}'

    def test_numbers_as_json(self):
        assert render_prompt("{{n}} items", {"n": 3}) == "3 items"

    def test_missing_and_none_left_verbatim(self):
        template = "{{a}} / {{b}}"
        assert render_prompt(template, {"b": None}) == template

    def test_repeated_placeholder(self):
        assert render_prompt("{{x}}-{{x}}", {"x": "y"}) == "y-y"

    def test_empty_string_substituted(self):
        assert render_prompt("[{{x}}]", {"x": ""}) == "[]"

    def test_template_variables(self):
        assert template_variables("{{b}} {{a}} {{b}}") == ["b", "a"]


class TestBuiltinSkills:
    """Test the bundled skill definitions."""

    def test_all_builtins_load(self, skills):
        assert set(skills.ids()) == BUILTIN_IDS
        assert len(skills) == len(BUILTIN_IDS)

    def test_render_with_no_variables_is_identity(self, skills):
        for skill in skills.all():
            assert render_prompt(skill.prompt_template, {}) == skill.prompt_template, skill.id

    def test_every_skill_has_backend_and_prompt(self, skills):
        for skill in skills.all():
            assert skill.preferred_backend in {"claude", "gemini", "codex"}, skill.id
            assert skill.system_prompt, skill.id

    def test_summarize_context_has_no_declared_domain(self, skills):
        # Routed by its preferred backend, not the forum chain
        skill = skills.get("summarize-context")
        assert skill.domain is None
        assert skill.preferred_backend == "gemini"

    def test_classify_news_template(self, skills):
        skill = skills.get("classify-news")

        assert skill.domain == "sentinel"
        assert skill.preferred_backend == "gemini"
        assert template_variables(skill.prompt_template) == [
            "portfolioContext", "articleCount", "articleList"
        ]
        assert skill.output_schema["type"] == "array"

    def test_verify_skill_inputs(self, skills):
        skill = skills.get(VERIFY_SKILL_ID)
        assert set(template_variables(skill.prompt_template)) == {"originalAnalysis", "rawData"}
        assert "agrees" in skill.output_schema["required"]

    def test_unknown_skill_lists_available(self, skills):
        with pytest.raises(UnknownSkillError) as exc_info:
            skills.get("no-such-skill")

        assert exc_info.value.skill_id == "no-such-skill"
        assert set(exc_info.value.available) == BUILTIN_IDS
        assert "classify-news" in str(exc_info.value)

    def test_has(self, skills):
        assert skills.has("classify-news")
        assert not skills.has("no-such-skill")


class TestSkillDirectories:
    """Test loading skills from extra directories."""

    def test_extra_dir_overrides_builtin(self, tmp_path):
        (tmp_path / "chat-response.yaml").write_text(
            "id: chat-response\n"
            "preferred_backend: gemini\n"
            "system_prompt: custom\n"
            "prompt_template: '{{message}}'\n"
        )
        registry = SkillRegistry.load(tmp_path)
        skill = registry.get("chat-response")

        assert skill.preferred_backend == "gemini"
        assert skill.system_prompt == "custom"
        assert skill.max_tokens == 2000
        assert skill.temperature == 0.3
        assert skill.name == "chat-response"

    def test_malformed_files_skipped(self, tmp_path):
        (tmp_path / "broken.yaml").write_text("id: [unclosed\n")
        (tmp_path / "incomplete.yaml").write_text("id: incomplete\n")
        (tmp_path / "empty.yaml").write_text("")
        (tmp_path / "good.yaml").write_text(
            "id: good\npreferred_backend: claude\nprompt_template: hi\n"
        )

        skills = load_skills(tmp_path)
        assert [s.id for s in skills] == ["good"]

    def test_missing_dir_yields_nothing(self, tmp_path):
        assert load_skills(tmp_path / "absent") == []
