"""
Switchboard Consensus

Turns verifier output into verdicts and reduces verdicts to a consensus status.
"""
from __future__ import annotations

import logging
from typing import Any, List, Optional, Sequence

from switchboard.models import (
    MAJORITY,
    NO_CONSENSUS,
    UNANIMOUS,
    ConsensusResult,
    GenerationResponse,
    VerificationVerdict,
)

logger = logging.getLogger("switchboard.consensus")

DEFAULT_VERDICT_CONFIDENCE = 0.5


def parse_verdict(backend: str, parsed: Any) -> VerificationVerdict:
    """Build a verdict from a verifier's structured output, with safe defaults."""
    if not isinstance(parsed, dict):
        logger.debug(f"Verifier {backend} returned no structured verdict, treating as dissent")
    data = parsed if isinstance(parsed, dict) else {}

    confidence = data.get("confidence")
    if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
        confidence = DEFAULT_VERDICT_CONFIDENCE
    confidence = min(max(float(confidence), 0.0), 1.0)

    concerns = data.get("concerns")
    if not isinstance(concerns, list):
        concerns = []

    alternative: Optional[str] = data.get("alternative")
    if not isinstance(alternative, str) or not alternative.strip():
        alternative = None

    return VerificationVerdict(
        backend=backend,
        agrees=data.get("agrees") is True,
        confidence=confidence,
        concerns=[str(c) for c in concerns],
        alternative=alternative,
    )


def evaluate_consensus(
    primary: GenerationResponse, verdicts: Sequence[VerificationVerdict]
) -> ConsensusResult:
    """Unanimous if all verifiers agree, majority if more than half of the
    participants agree, else no consensus.

    The primary backend is a participant that backs its own analysis, so one
    agreeing and one dissenting verifier make a 2-of-3 majority. No verdicts
    counts as unanimous.
    """
    verdicts = list(verdicts)
    if not verdicts:
        return ConsensusResult(status=UNANIMOUS, primary=primary, verifications=[])

    agree_count = sum(1 for v in verdicts if v.agrees)
    if agree_count == len(verdicts):
        return ConsensusResult(status=UNANIMOUS, primary=primary, verifications=verdicts)

    participants = len(verdicts) + 1
    if agree_count + 1 > participants / 2:
        minority: List[str] = [c for v in verdicts if not v.agrees for c in v.concerns]
        return ConsensusResult(
            status=MAJORITY,
            primary=primary,
            verifications=verdicts,
            minority_concerns=minority,
        )

    return ConsensusResult(status=NO_CONSENSUS, primary=primary, verifications=verdicts)
