from dataclasses import dataclass
from typing import List, Optional, Tuple

import structlog

from ..schemas.sizing import BMIAnalysis, EdgeCase, EdgeCaseType, RiskLevel, Severity
from .calibrator import Calibration
from .size_charts import SizeChart
from .size_mapper import Baseline


logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class RiskPolicy:
    boundary_proximity_cm: float = 2.0
    # Heights further than this outside the chart escalate to CRITICAL.
    critical_height_margin_cm: float = 10.0
    disagreement_threshold: float = 0.5


@dataclass(frozen=True)
class RiskAssessment:
    risk_level: RiskLevel
    edge_cases: Tuple[EdgeCase, ...]

    def has(self, edge_type: EdgeCaseType) -> bool:
        return any(e.type == edge_type for e in self.edge_cases)


class RiskClassifier:
    def __init__(self, policy: Optional[RiskPolicy] = None) -> None:
        self.policy = policy or RiskPolicy()

    def _height_case(self, height_cm: float, chart: SizeChart, baseline: Baseline) -> Tuple[Optional[EdgeCase], bool]:
        escalate = baseline.out_of_range_cm > self.policy.critical_height_margin_cm
        if baseline.out_of_range_side == "above":
            case = EdgeCase(
                type=EdgeCaseType.HEIGHT_OUT_OF_RANGE,
                severity=Severity.HIGH,
                message=f"Your height ({height_cm:g}cm) exceeds our largest size ({chart.max_height_cm:g}cm max)",
            )
            return case, escalate
        if baseline.out_of_range_side == "below":
            case = EdgeCase(
                type=EdgeCaseType.HEIGHT_OUT_OF_RANGE,
                severity=Severity.HIGH,
                message=f"Your height ({height_cm:g}cm) is below our smallest size ({chart.min_height_cm:g}cm min)",
            )
            return case, escalate

        nearest = min(chart.boundaries, key=lambda b: abs(height_cm - b))
        if abs(height_cm - nearest) <= self.policy.boundary_proximity_cm:
            return (
                EdgeCase(
                    type=EdgeCaseType.BOUNDARY_PROXIMITY,
                    severity=Severity.LOW,
                    message=f"Your height ({height_cm:g}cm) is at the edge of size {baseline.primary}'s range ({nearest:g}cm boundary)",
                ),
                False,
            )
        return None, False

    def _bmi_cases(self, bmi_analysis: BMIAnalysis, baseline: Baseline) -> List[EdgeCase]:
        cases = []
        if bmi_analysis.is_extreme:
            cases.append(
                EdgeCase(
                    type=EdgeCaseType.BMI_EXTREME,
                    severity=Severity.MEDIUM,
                    message=f"Your BMI ({bmi_analysis.bmi}) indicates unusual body proportions for this chart",
                )
            )
        if baseline.bmi_shift_blocked:
            direction = "larger" if baseline.bmi_step > 0 else "smaller"
            cases.append(
                EdgeCase(
                    type=EdgeCaseType.BMI_SIZE_CONFLICT,
                    severity=Severity.MEDIUM,
                    message=f"Your build suggests a {direction} size than {baseline.primary}, but this chart has none",
                )
            )
        return cases

    def _calibration_case(self, calibration: Calibration) -> Optional[EdgeCase]:
        if calibration.agreement_score >= self.policy.disagreement_threshold:
            return None
        return EdgeCase(
            type=EdgeCaseType.CALIBRATION_DISAGREEMENT,
            severity=Severity.HIGH,
            message=(
                f"Your favorite jersey points to size {calibration.calibrated_size}, "
                f"but your height and build point to {calibration.adjusted_primary}"
            ),
        )

    def classify(
        self,
        height_cm: float,
        bmi_analysis: BMIAnalysis,
        chart: SizeChart,
        baseline: Baseline,
        calibration: Optional[Calibration] = None,
    ) -> RiskAssessment:
        cases: List[EdgeCase] = []

        height_case, escalate = self._height_case(height_cm, chart, baseline)
        if height_case:
            cases.append(height_case)
        cases.extend(self._bmi_cases(bmi_analysis, baseline))
        if calibration is not None:
            calibration_case = self._calibration_case(calibration)
            if calibration_case:
                cases.append(calibration_case)

        risk = RiskLevel.LOW
        for case in cases:
            level = RiskLevel.from_severity(case.severity)
            if level.rank > risk.rank:
                risk = level
        if escalate:
            risk = RiskLevel.CRITICAL

        if cases:
            logger.info("risk_classified", chart=str(chart.key), risk_level=risk.value, edge_cases=[c.type.value for c in cases])
        return RiskAssessment(risk_level=risk, edge_cases=tuple(cases))
