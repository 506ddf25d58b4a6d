"""Assemble the buyer-facing recommendation and apply the action policy."""
from dataclasses import asdict
from typing import Dict, List, Optional, Tuple

from ..schemas.sizing import (
    BMIAnalysis,
    BMICategory,
    ConfidenceBreakdown,
    FitPreference,
    RecommendedAction,
    RiskLevel,
    Severity,
    SizeRecommendation,
    SizingInput,
)
from .calibrator import Calibration
from .risk import RiskAssessment
from .size_charts import SizeChart
from .size_mapper import Baseline


MEDIUM_CONFIDENCE_FLOOR = 60

# (risk level, confidence >= MEDIUM_CONFIDENCE_FLOOR) -> action
ACTION_TABLE: Dict[Tuple[RiskLevel, bool], RecommendedAction] = {
    (RiskLevel.LOW, True): RecommendedAction.ORDER_NOW,
    (RiskLevel.LOW, False): RecommendedAction.ORDER_NOW,
    (RiskLevel.MEDIUM, True): RecommendedAction.ORDER_WITH_INFO,
    (RiskLevel.MEDIUM, False): RecommendedAction.CONTACT_RECOMMENDED,
    (RiskLevel.HIGH, True): RecommendedAction.CONTACT_RECOMMENDED,
    (RiskLevel.HIGH, False): RecommendedAction.CONTACT_RECOMMENDED,
    (RiskLevel.CRITICAL, True): RecommendedAction.MUST_CONTACT,
    (RiskLevel.CRITICAL, False): RecommendedAction.MUST_CONTACT,
}

_missing = {(r, ok) for r in RiskLevel for ok in (True, False)} - ACTION_TABLE.keys()
if _missing:
    raise RuntimeError(f"ACTION_TABLE has no action for {sorted((r.value, ok) for r, ok in _missing)}")

CONTACT_ACTIONS = {RecommendedAction.CONTACT_RECOMMENDED, RecommendedAction.MUST_CONTACT}

# Owned garment wider than this share of the buyer's height is probably mis-measured.
MAX_JERSEY_WIDTH_RATIO = 0.4


def recommended_action(risk_level: RiskLevel, confidence: int) -> RecommendedAction:
    return ACTION_TABLE[(risk_level, confidence >= MEDIUM_CONFIDENCE_FLOOR)]


def generate_title(risk_level: RiskLevel, primary: str) -> str:
    titles = {
        RiskLevel.LOW: f"YOUR SIZE: {primary}",
        RiskLevel.MEDIUM: f"RECOMMENDED SIZE: {primary}",
        RiskLevel.HIGH: "PLEASE READ BEFORE ORDERING",
        RiskLevel.CRITICAL: "CONTACT US BEFORE ORDERING",
    }
    return titles[risk_level]


def generate_subtitle(risk_level: RiskLevel, confidence: int, primary: str) -> str:
    subtitles = {
        RiskLevel.LOW: f"Confidence: {confidence}% - Excellent match",
        RiskLevel.MEDIUM: f"Confidence: {confidence}% - Good match",
        RiskLevel.HIGH: f"Confidence: {confidence}% - Please review carefully",
        RiskLevel.CRITICAL: f"Suggested starting point: size {primary}",
    }
    return subtitles[risk_level]


def _height_line(height_cm: float, baseline: Baseline) -> str:
    entry = baseline.entry
    lo, hi = entry.height_min_cm, entry.height_max_cm
    if not baseline.in_range:
        return f"Your height ({height_cm:g}cm) is outside our size range; size {entry.size} ({lo:g}-{hi:g}cm) is the closest"
    if abs(height_cm - entry.midpoint_cm) <= 2:
        return f"Your height ({height_cm:g}cm) is perfectly centered in size {entry.size}'s range ({lo:g}-{hi:g}cm)"
    end = "lower" if height_cm <= entry.midpoint_cm else "upper"
    return f"Your height ({height_cm:g}cm) fits size {entry.size} ({lo:g}-{hi:g}cm), toward the {end} end"


def _bmi_line(bmi_analysis: BMIAnalysis, baseline: Baseline) -> str:
    bmi = bmi_analysis.bmi
    if baseline.bmi_shift_applied:
        feel = "roomier" if baseline.bmi_step > 0 else "closer-fitting"
        return f"Your build (BMI {bmi}) suggests a {feel} fit, so size {baseline.alternate} is a good alternative"
    if baseline.bmi_shift_blocked:
        direction, end = ("larger", "largest") if baseline.bmi_step > 0 else ("smaller", "smallest")
        return f"Your build (BMI {bmi}) would suggest a {direction} size, but {baseline.primary} is the {end} we make"
    if bmi_analysis.category == BMICategory.athletic:
        return f"Your build (BMI {bmi}) suggests athletic/muscular - this size should fit comfortably"
    if bmi_analysis.category == BMICategory.normal:
        return f"Your build (BMI {bmi}) is ideal for this size"
    return f"Your build (BMI {bmi}) did not change the height-based size"


def _calibration_line(calibration: Optional[Calibration], baseline: Baseline) -> str:
    if calibration is None:
        return "Adding the measurements of a jersey you already own would make this recommendation more precise"
    feeling = calibration.fit_feeling.value
    size = calibration.calibrated_size
    if calibration.agreement_score >= 1.0:
        return f"Your favorite jersey (fits {feeling}) confirms size {size}"
    if size == baseline.alternate:
        return f"Your favorite jersey (fits {feeling}) points to size {size}, matching the adjustment for your build"
    if size == baseline.primary:
        return f"Your favorite jersey (fits {feeling}) confirms the height-based size {baseline.primary}"
    return f"Your favorite jersey (fits {feeling}) points to size {size}, which differs from the height-based size {baseline.primary}"


def _fit_preference_line(preference: FitPreference, primary: str, alternate: str) -> Optional[str]:
    if preference == FitPreference.regular:
        return None
    if primary == alternate:
        return f"You prefer a {preference.value} fit; size {primary} follows the standard cut of this chart"
    lean = "closer" if preference == FitPreference.slim else "looser"
    return f"You prefer a {preference.value} fit; compare {primary} and {alternate} and pick the {lean}-fitting one"


def _risk_line(risk_level: RiskLevel) -> str:
    lines = {
        RiskLevel.LOW: "This size should fit you well - order with confidence",
        RiskLevel.MEDIUM: "This size should work, but review the alternate size as well",
        RiskLevel.HIGH: "Please review the notes below before ordering",
        RiskLevel.CRITICAL: "Our team will confirm your size before production",
    }
    return lines[risk_level]


class RecommendationComposer:
    def rationale(
        self,
        sizing_input: SizingInput,
        bmi_analysis: BMIAnalysis,
        baseline: Baseline,
        risk_level: RiskLevel,
        primary: str,
        alternate: str,
        calibration: Optional[Calibration] = None,
    ) -> List[str]:
        lines = [
            _height_line(sizing_input.height_cm, baseline),
            _bmi_line(bmi_analysis, baseline),
            _calibration_line(calibration, baseline),
        ]
        pref = _fit_preference_line(sizing_input.fit_preference, primary, alternate)
        if pref:
            lines.append(pref)
        lines.append(_risk_line(risk_level))
        return lines

    def warnings(
        self,
        sizing_input: SizingInput,
        baseline: Baseline,
        assessment: RiskAssessment,
        calibration: Optional[Calibration] = None,
    ) -> List[str]:
        out = [c.message for c in assessment.edge_cases if c.severity != Severity.LOW]
        jersey = sizing_input.favorite_jersey
        if jersey is not None and jersey.width_cm > sizing_input.height_cm * MAX_JERSEY_WIDTH_RATIO:
            out.append("Jersey width seems unusually large. Please verify measurement.")
        if sizing_input.fit_preference == FitPreference.slim and baseline.bmi_step > 0:
            out.append("A slim fit with a fuller build may feel snug; consider the alternate size")
        if calibration is not None and calibration.step_clamped:
            end = "largest" if calibration.fit_feeling.value == "tight" else "smallest"
            out.append(f"Your favorite jersey fits {calibration.fit_feeling.value}, but {calibration.calibrated_size} is already the {end} size in this chart")
        return out

    def compose(
        self,
        sizing_input: SizingInput,
        bmi_analysis: BMIAnalysis,
        baseline: Baseline,
        assessment: RiskAssessment,
        breakdown: ConfidenceBreakdown,
        calibration: Optional[Calibration] = None,
        chart: Optional[SizeChart] = None,
        debug: bool = False,
    ) -> SizeRecommendation:
        if calibration is not None:
            primary, alternate = calibration.adjusted_primary, calibration.adjusted_alternate
        else:
            primary, alternate = baseline.primary, baseline.alternate

        risk_level = assessment.risk_level
        confidence = breakdown.total
        action = recommended_action(risk_level, confidence)

        debug_info = None
        if debug:
            debug_info = {
                "chart": str(chart.key) if chart is not None else None,
                "chart_sizes": chart.labels if chart is not None else None,
                "baseline": {
                    "primary": baseline.primary,
                    "alternate": baseline.alternate,
                    "bmi_step": baseline.bmi_step,
                    "out_of_range_cm": baseline.out_of_range_cm,
                    "out_of_range_side": baseline.out_of_range_side,
                },
                "calibration": {k: (v.value if hasattr(v, "value") else v) for k, v in asdict(calibration).items()} if calibration else None,
                "input": sizing_input.model_dump(mode="json", by_alias=True),
            }

        return SizeRecommendation(
            title=generate_title(risk_level, primary),
            subtitle=generate_subtitle(risk_level, confidence, primary),
            primary=primary,
            alternate=alternate,
            confidence=confidence,
            risk_level=risk_level,
            rationale=self.rationale(sizing_input, bmi_analysis, baseline, risk_level, primary, alternate, calibration),
            warnings=self.warnings(sizing_input, baseline, assessment, calibration),
            edge_cases=list(assessment.edge_cases),
            bmi_analysis=bmi_analysis,
            recommended_action=action,
            should_show_contact=action in CONTACT_ACTIONS,
            confidence_breakdown=breakdown,
            debug=debug_info,
        )
