from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Iterable, List

from .features import FEATURE_DIM, FEATURE_INDEX
from .models import Citation, FeatureVector, Finding, Severity, Verdict, VerdictStatus

MISINFORMATION_REFERENCE = Citation(
    url="https://en.wikipedia.org/wiki/Misinformation",
    label="Wikipedia: Misinformation",
)
FACTCHECK_GUIDE = Citation(
    url="https://www.factcheck.org/2020/02/how-to-spot-misinformation/",
    label="FactCheck.org Guide",
)

DEGRADED_SCORE = 60


@dataclass(frozen=True)
class PenaltyRule:
    name: str
    features: tuple[int, ...]
    threshold: float
    penalty: int
    rationale: str

    def triggered(self, vector: FeatureVector) -> bool:
        return any(vector[index] > self.threshold for index in self.features)


DEFAULT_RULES: tuple[PenaltyRule, ...] = (
    PenaltyRule(
        name="suspicious-language",
        features=(FEATURE_INDEX["suspicious_density"],),
        threshold=0.02,
        penalty=30,
        rationale="Contains suspicious language patterns commonly used in misinformation",
    ),
    PenaltyRule(
        name="emotional-language",
        features=(FEATURE_INDEX["emotional_density"],),
        threshold=0.015,
        penalty=25,
        rationale="Uses emotionally charged language to manipulate reader response",
    ),
    PenaltyRule(
        name="uncertainty-language",
        features=(FEATURE_INDEX["uncertainty_density"],),
        threshold=0.01,
        penalty=15,
        rationale="Contains uncertain language that may indicate unverified claims",
    ),
    PenaltyRule(
        name="sensational-formatting",
        features=(
            FEATURE_INDEX["exclamation_runs"],
            FEATURE_INDEX["caps_runs"],
            FEATURE_INDEX["question_runs"],
        ),
        threshold=0.0,
        penalty=20,
        rationale="Uses attention-grabbing formatting typical of sensationalized content",
    ),
    PenaltyRule(
        name="virality-pressure",
        features=(FEATURE_INDEX["share_pressure"], FEATURE_INDEX["censorship_claim"]),
        threshold=0.0,
        penalty=25,
        rationale="Contains urgency tactics pressuring readers to share quickly",
    ),
)


def status_for_score(score: int) -> VerdictStatus:
    if score >= 80:
        return VerdictStatus.CREDIBLE
    if score >= 60:
        return VerdictStatus.QUESTIONABLE
    if score >= 30:
        return VerdictStatus.MISLEADING
    return VerdictStatus.EXTREMELY_MISLEADING


def _sanitize(vector: Any) -> FeatureVector:
    try:
        values = list(vector)
    except TypeError:
        values = []
    cleaned: List[float] = []
    for value in values[:FEATURE_DIM]:
        try:
            number = float(value)
        except (TypeError, ValueError):
            number = 0.0
        if not math.isfinite(number):
            number = 0.0
        cleaned.append(min(max(number, 0.0), 1.0))
    cleaned.extend([0.0] * (FEATURE_DIM - len(cleaned)))
    return tuple(cleaned)


class HeuristicScorer:
    """Rule-based credibility scoring over extracted feature vectors."""

    def __init__(self, rules: Iterable[PenaltyRule] = DEFAULT_RULES) -> None:
        self._rules = tuple(rules)

    @property
    def rules(self) -> tuple[PenaltyRule, ...]:
        return self._rules

    def score(self, vector: FeatureVector) -> Verdict:
        features = _sanitize(vector)
        penalty = 0
        reasons: List[str] = []
        for rule in self._rules:
            if rule.triggered(features):
                penalty += rule.penalty
                reasons.append(rule.rationale)

        score = max(0, min(100, 100 - penalty))
        return Verdict(
            score=score,
            status=status_for_score(score),
            summary=self._summary(score, reasons),
            findings=self._findings(score, reasons),
        )

    def degraded(self, reason: str = "") -> Verdict:
        """Neutral verdict returned when the offline analysis could not run."""
        detail = f" ({reason})" if reason else ""
        return Verdict(
            score=DEGRADED_SCORE,
            status=status_for_score(DEGRADED_SCORE),
            summary=(
                "Offline analysis could not be completed. Treat this content as unverified "
                "and check it against trusted sources."
            ),
            findings=[
                Finding(
                    section="Analysis Degraded",
                    severity=Severity.CAUTION,
                    explanation=f"Offline analysis degraded{detail}; no rule-based signals were evaluated.",
                    citations=[FACTCHECK_GUIDE],
                )
            ],
        )

    @staticmethod
    def _summary(score: int, reasons: List[str]) -> str:
        if score >= 80:
            return (
                "Offline analysis suggests this content appears credible with no major red flags detected. "
                "However, verify with trusted sources for important information."
            )
        if score >= 60:
            concerns = f" Main concerns: {', '.join(reasons[:2])}." if reasons else ""
            return (
                "Offline analysis found some questionable elements. Review carefully and cross-check "
                f"with reliable sources.{concerns}"
            )
        if score >= 30:
            return (
                "Offline analysis detected multiple misinformation indicators. This content should be "
                f"verified with authoritative sources before sharing. Key issues: {', '.join(reasons[:3])}."
            )
        return (
            "Offline analysis indicates this content is highly likely to be misleading or false. "
            "Contains multiple red flags typical of misinformation. Do not share without thorough fact-checking."
        )

    @staticmethod
    def _findings(score: int, reasons: List[str]) -> List[Finding]:
        if score >= 70:
            severity = Severity.TRUE
        elif score >= 40:
            severity = Severity.CAUTION
        else:
            severity = Severity.FALSE

        if reasons:
            outcome = f"Found {len(reasons)} potential concern(s)."
        else:
            outcome = "No significant red flags detected."
        findings = [
            Finding(
                section="Offline Analysis",
                severity=severity,
                explanation=f"Rule-based analysis completed. {outcome}",
                citations=[MISINFORMATION_REFERENCE],
            )
        ]
        if reasons:
            findings.append(
                Finding(
                    section="Detected Issues",
                    severity=Severity.CAUTION,
                    explanation=". ".join(reasons),
                    citations=[FACTCHECK_GUIDE],
                )
            )
        return findings
