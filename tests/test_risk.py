import pytest

from app.schemas.sizing import EdgeCaseType, FitFeeling, RiskLevel, Severity
from app.services.calibrator import Calibration
from app.services.risk import RiskClassifier, RiskPolicy
from app.services.size_mapper import SizeMapper


def _calibration(agreement):
    return Calibration(
        adjusted_primary="M",
        adjusted_alternate="XL",
        agreement_score=agreement,
        inferred_size="XL",
        calibrated_size="XL",
        fit_feeling=FitFeeling.perfect,
        length_diff_cm=0.0,
        width_diff_cm=0.0,
    )


def _classify(classifier, height_cm, bmi_analysis, chart, calibration=None):
    baseline = SizeMapper().map_baseline(height_cm, bmi_analysis, chart)
    return classifier.classify(height_cm, bmi_analysis, chart, baseline, calibration)


def test_comfortable_input_is_low_risk(chart, bmi):
    result = _classify(RiskClassifier(), 155, bmi("normal"), chart)
    assert result.risk_level == RiskLevel.LOW
    assert result.edge_cases == ()


@pytest.mark.parametrize("height_cm", [141, 149, 150, 152, 168, 179])
def test_boundary_proximity_is_low_severity(chart, bmi, height_cm):
    result = _classify(RiskClassifier(), height_cm, bmi("normal"), chart)
    assert [c.type for c in result.edge_cases] == [EdgeCaseType.BOUNDARY_PROXIMITY]
    assert result.edge_cases[0].severity == Severity.LOW
    assert result.risk_level == RiskLevel.LOW


@pytest.mark.parametrize("height_cm, expected", [(185, RiskLevel.HIGH), (190, RiskLevel.HIGH), (195, RiskLevel.CRITICAL), (135, RiskLevel.HIGH), (125, RiskLevel.CRITICAL)])
def test_height_out_of_range(chart, bmi, height_cm, expected):
    result = _classify(RiskClassifier(), height_cm, bmi("normal"), chart)
    assert result.has(EdgeCaseType.HEIGHT_OUT_OF_RANGE)
    assert not result.has(EdgeCaseType.BOUNDARY_PROXIMITY)
    assert result.edge_cases[0].severity == Severity.HIGH
    assert result.risk_level == expected


def test_escalation_margin_is_policy(chart, bmi):
    result = _classify(RiskClassifier(RiskPolicy(critical_height_margin_cm=3)), 185, bmi("normal"), chart)
    assert result.risk_level == RiskLevel.CRITICAL


def test_extreme_bmi_is_medium(chart, bmi):
    result = _classify(RiskClassifier(), 155, bmi("obese", 32.0), chart)
    assert [c.type for c in result.edge_cases] == [EdgeCaseType.BMI_EXTREME]
    assert result.risk_level == RiskLevel.MEDIUM


def test_bmi_shift_blocked_at_chart_end(chart, bmi):
    result = _classify(RiskClassifier(), 175, bmi("overweight", 28.0), chart)
    assert [c.type for c in result.edge_cases] == [EdgeCaseType.BMI_SIZE_CONFLICT]
    assert "larger" in result.edge_cases[0].message
    assert result.risk_level == RiskLevel.MEDIUM

    small = _classify(RiskClassifier(), 145, bmi("underweight", 15.0), chart)
    assert {c.type for c in small.edge_cases} == {EdgeCaseType.BMI_EXTREME, EdgeCaseType.BMI_SIZE_CONFLICT}


def test_calibration_disagreement_is_high(chart, bmi):
    result = _classify(RiskClassifier(), 155, bmi("normal"), chart, _calibration(0.0))
    assert result.has(EdgeCaseType.CALIBRATION_DISAGREEMENT)
    assert result.risk_level == RiskLevel.HIGH
    assert "XL" in result.edge_cases[0].message


def test_half_agreement_is_not_a_disagreement(chart, bmi):
    result = _classify(RiskClassifier(), 155, bmi("normal"), chart, _calibration(0.5))
    assert not result.has(EdgeCaseType.CALIBRATION_DISAGREEMENT)


def test_findings_are_cumulative(chart, bmi):
    result = _classify(RiskClassifier(), 185, bmi("obese", 33.0), chart, _calibration(0.0))
    types = {c.type for c in result.edge_cases}
    assert types == {
        EdgeCaseType.HEIGHT_OUT_OF_RANGE,
        EdgeCaseType.BMI_EXTREME,
        EdgeCaseType.BMI_SIZE_CONFLICT,
        EdgeCaseType.CALIBRATION_DISAGREEMENT,
    }
    assert result.risk_level == RiskLevel.HIGH


def test_risk_never_drops_as_height_moves_out_of_chart(chart, bmi):
    classifier = RiskClassifier()
    ranks = [_classify(classifier, h, bmi("normal"), chart).risk_level.rank for h in (175, 179, 180, 181, 186, 190, 191, 200, 240)]
    assert ranks == sorted(ranks)
