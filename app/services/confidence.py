from dataclasses import dataclass, field
from typing import Dict, Optional

from ..schemas.sizing import ConfidenceBreakdown, RiskLevel


BASE_CONFIDENCE: Dict[RiskLevel, int] = {
    RiskLevel.LOW: 90,
    RiskLevel.MEDIUM: 70,
    RiskLevel.HIGH: 45,
    RiskLevel.CRITICAL: 20,
}


@dataclass(frozen=True)
class ConfidencePolicy:
    base: Dict[RiskLevel, int] = field(default_factory=lambda: dict(BASE_CONFIDENCE))
    agreement_bonus: int = 10
    agreement_bonus_threshold: float = 0.8
    disagreement_penalty: int = 15
    disagreement_threshold: float = 0.5


class ConfidenceScorer:
    def __init__(self, policy: Optional[ConfidencePolicy] = None) -> None:
        self.policy = policy or ConfidencePolicy()

    def breakdown(self, risk_level: RiskLevel, has_calibration: bool, agreement_score: Optional[float] = None) -> ConfidenceBreakdown:
        p = self.policy
        base = p.base[risk_level]
        adjustment = 0
        if has_calibration and agreement_score is not None:
            if agreement_score >= p.agreement_bonus_threshold:
                adjustment = p.agreement_bonus
            elif agreement_score < p.disagreement_threshold:
                adjustment = -p.disagreement_penalty
        total = max(0, min(100, base + adjustment))
        return ConfidenceBreakdown(base_score=base, calibration_adjustment=adjustment, total=total)

    def score(self, risk_level: RiskLevel, has_calibration: bool, agreement_score: Optional[float] = None) -> int:
        return self.breakdown(risk_level, has_calibration, agreement_score).total
