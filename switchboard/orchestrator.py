#!/usr/bin/env python3
"""
Switchboard Orchestrator

Routes skills to backends with fallback and cross-verification.

Usage:
    orchestrator = Orchestrator(BackendRegistry(), SkillRegistry.load())
    response = await orchestrator.execute("classify-news", {...})
    consensus = await orchestrator.execute_with_verification("analyze-technicals", {...})
"""
from __future__ import annotations

import dataclasses
import logging
from typing import Any, Dict, List, Mapping, Optional

from switchboard.config import (
    DEFAULT_DOMAIN,
    DISABLED_VERIFICATION,
    SwitchboardConfig,
    VerificationConfig,
)
from switchboard.consensus import evaluate_consensus, parse_verdict
from switchboard.errors import AllBackendsFailedError, BackendError
from switchboard.models import (
    BackendHealth,
    ConsensusResult,
    ExecuteOptions,
    FallbackChain,
    GenerationRequest,
    GenerationResponse,
    Selection,
    Skill,
    VerificationVerdict,
)
from switchboard.backends import BaseBackend
from switchboard.registry import BackendRegistry
from switchboard.skills import VERIFY_SKILL_ID, SkillRegistry, render_prompt
from switchboard.utils import describe_error, gather_settled

logger = logging.getLogger("switchboard.orchestrator")


def skill_domain(skill: Skill) -> str:
    """Task domain of a skill: declared, else the id prefix before the first '-'."""
    return skill.domain or skill.id.split("-")[0]


class Orchestrator:
    """Executes skills and raw prompts across backends."""

    def __init__(
        self,
        registry: BackendRegistry,
        skills: SkillRegistry,
        config: Optional[SwitchboardConfig] = None,
    ):
        self.registry = registry
        self.skills = skills
        self.config = config or SwitchboardConfig()

    # ------------------------------------------------------------------
    # Skill execution
    # ------------------------------------------------------------------

    async def execute(
        self,
        skill_id: str,
        input: Mapping[str, Any],
        options: Optional[ExecuteOptions] = None,
    ) -> GenerationResponse:
        """Execute a skill on the best available backend, falling back on failure."""
        options = options or ExecuteOptions()
        skill = self.skills.get(skill_id)
        prompt = render_prompt(skill.prompt_template, input)

        chain = self.get_chain(skill, options.backend_override)
        request = GenerationRequest(
            system_prompt=skill.system_prompt,
            prompt=prompt,
            output_schema=skill.output_schema,
            max_tokens=skill.max_tokens,
            temperature=skill.temperature,
            timeout=options.timeout or self.config.default_timeout,
        )
        return await self._run_chain(request, chain, strict=options.strict)

    async def execute_with_verification(
        self,
        skill_id: str,
        input: Mapping[str, Any],
        options: Optional[ExecuteOptions] = None,
    ) -> ConsensusResult:
        """Execute a skill, then have other backends verify the result.

        The primary's failure propagates. Verifier failures are logged and
        only shrink the set of verdicts.
        """
        options = options or ExecuteOptions()
        primary = await self.execute(skill_id, input, options)

        skill = self.skills.get(skill_id)
        verify_config = self.verification_config(skill, options)
        if not verify_config.enabled or verify_config.verifiers <= 0:
            return evaluate_consensus(primary, [])

        verifiers = self.registry.verifiers(primary.backend, verify_config.verifiers)
        if not verifiers:
            logger.warning(f"No verifiers available besides {primary.backend}")
            return evaluate_consensus(primary, [])

        verify_skill = self.skills.get(VERIFY_SKILL_ID)
        verify_prompt = render_prompt(
            verify_skill.prompt_template,
            {
                "originalAnalysis": primary.text,
                "rawData": render_prompt(skill.prompt_template, input),
            },
        )
        request = GenerationRequest(
            system_prompt=verify_skill.system_prompt,
            prompt=verify_prompt,
            output_schema=verify_skill.output_schema,
            max_tokens=verify_skill.max_tokens,
            temperature=verify_skill.temperature,
            timeout=options.timeout or self.config.verify_timeout,
        )

        outcomes = await gather_settled(*(self._verify(v, request) for v in verifiers))
        verdicts: List[VerificationVerdict] = []
        for verifier, outcome in zip(verifiers, outcomes):
            if outcome.ok:
                verdicts.append(outcome.value)
            else:
                logger.warning(f"Verification by {verifier.name} failed: {describe_error(outcome.error)}")

        result = evaluate_consensus(primary, verdicts)
        logger.info(
            f"Consensus for {skill_id}: {result.status} "
            f"({len(verdicts)}/{len(verifiers)} verifiers responded)"
        )
        return result

    async def _verify(self, verifier: BaseBackend, request: GenerationRequest) -> VerificationVerdict:
        response = await verifier.execute(request)
        return parse_verdict(verifier.name, response.parsed)

    # ------------------------------------------------------------------
    # Raw prompts
    # ------------------------------------------------------------------

    async def execute_raw(
        self,
        request: GenerationRequest,
        domain: str = DEFAULT_DOMAIN,
        backend_override: Optional[str] = None,
        strict: bool = False,
    ) -> GenerationResponse:
        """Execute an ad-hoc request (no skill) with the same fallback logic."""
        if backend_override:
            chain = FallbackChain(backend_override, tuple(self.fallbacks_for(backend_override)))
        else:
            chains = self.config.fallback_chains
            chain = chains.get(domain) or chains[DEFAULT_DOMAIN]
        if request.timeout is None:
            request = dataclasses.replace(request, timeout=self.config.default_timeout)
        return await self._run_chain(request, chain, strict=strict)

    # ------------------------------------------------------------------
    # Fallback machinery
    # ------------------------------------------------------------------

    async def _run_chain(
        self, request: GenerationRequest, chain: FallbackChain, strict: bool = False
    ) -> GenerationResponse:
        selection: Selection = await self.registry.select_backend(chain, strict=strict)
        try:
            response = await selection.backend.execute(request)
        except BackendError as e:
            logger.warning(f"{selection.type} failed at runtime: {e}")
            self.registry.invalidate_health(selection.type)
            # Only a failed primary walks the chain; a failed fallback is final
            if selection.was_fallback:
                raise
            return await self.execute_fallback(
                request, chain, selection.type, failures={selection.type: str(e)}
            )

        return dataclasses.replace(
            response,
            backend=selection.type,
            was_fallback=selection.was_fallback,
            original_backend=selection.original_type,
        )

    async def execute_fallback(
        self,
        request: GenerationRequest,
        chain: FallbackChain,
        failed_backend: str,
        failures: Optional[Dict[str, str]] = None,
    ) -> GenerationResponse:
        """Try the chain's fallbacks after failed_backend, in order.

        Never retries failed_backend. When failed_backend is itself a
        fallback, only the members after it are tried.
        """
        failures = dict(failures or {})
        fallbacks = list(chain.fallbacks)
        if failed_backend in fallbacks:
            fallbacks = fallbacks[fallbacks.index(failed_backend) + 1:]
        remaining = [t for t in fallbacks if t != failed_backend]

        for fallback_type in remaining:
            backend = self.registry.get(fallback_type)
            try:
                response = await backend.execute(request)
            except BackendError as e:
                logger.warning(f"Fallback {fallback_type} failed: {e}")
                self.registry.invalidate_health(fallback_type)
                failures[fallback_type] = str(e)
                continue

            logger.info(f"Served by fallback {fallback_type} (chain primary {chain.primary})")
            return dataclasses.replace(
                response,
                backend=fallback_type,
                was_fallback=True,
                original_backend=chain.primary,
            )

        logger.error(f"All backends failed. Chain: {' -> '.join(chain.members())}")
        raise AllBackendsFailedError(chain.members(), failures)

    # ------------------------------------------------------------------
    # Routing tables
    # ------------------------------------------------------------------

    def get_chain(self, skill: Skill, backend_override: Optional[str] = None) -> FallbackChain:
        """Override > domain chain > skill's preferred backend plus all others."""
        if backend_override:
            return FallbackChain(backend_override, tuple(self.fallbacks_for(backend_override)))

        chain = self.config.fallback_chains.get(skill_domain(skill))
        if chain is not None:
            return chain
        return FallbackChain(
            skill.preferred_backend, tuple(self.fallbacks_for(skill.preferred_backend))
        )

    def fallbacks_for(self, backend: str) -> List[str]:
        """Every other registered backend, in registration order."""
        return [t for t in self.registry.types() if t != backend]

    def verification_config(self, skill: Skill, options: ExecuteOptions) -> VerificationConfig:
        """Explicit option > per-skill config > per-domain config > disabled."""
        if options.verify is not None:
            if not options.verify:
                return DISABLED_VERIFICATION
            return VerificationConfig(enabled=True, verifiers=options.verifier_count or 1)

        table = self.config.verification
        config = table.get(skill.id) or table.get(skill_domain(skill)) or DISABLED_VERIFICATION
        if options.verifier_count and config.enabled:
            return VerificationConfig(enabled=True, verifiers=options.verifier_count)
        return config

    # ------------------------------------------------------------------
    # Health pass-throughs
    # ------------------------------------------------------------------

    async def check_all_health(self) -> List[BackendHealth]:
        return await self.registry.check_all_health()

    def invalidate_all_health(self) -> None:
        self.registry.invalidate_all_health()
