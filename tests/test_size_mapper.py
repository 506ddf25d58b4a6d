import pytest

from app.services.size_mapper import SizeMapper, locate_height


@pytest.mark.parametrize(
    "height_cm, label",
    [(141, "S"), (145, "S"), (155.5, "M"), (165, "L"), (179.9, "XL")],
)
def test_height_inside_row_with_normal_bmi(chart, bmi, height_cm, label):
    baseline = SizeMapper().map_baseline(height_cm, bmi("normal"), chart)
    assert baseline.primary == label
    assert baseline.alternate == label
    assert baseline.in_range


@pytest.mark.parametrize("height_cm, label", [(150, "M"), (160, "L"), (170, "XL")])
def test_shared_boundary_goes_to_larger_size(chart, bmi, height_cm, label):
    assert SizeMapper().map_baseline(height_cm, bmi("normal"), chart).primary == label


def test_top_edge_of_chart_belongs_to_last_row(chart):
    assert locate_height(180, chart) == (3, 0.0, None)


def test_height_outside_chart_clamps_to_nearest_row(chart, bmi):
    mapper = SizeMapper()
    tall = mapper.map_baseline(190, bmi("normal"), chart)
    assert (tall.primary, tall.out_of_range_cm, tall.out_of_range_side) == ("XL", 10.0, "above")
    short = mapper.map_baseline(132.5, bmi("normal"), chart)
    assert (short.primary, short.out_of_range_cm, short.out_of_range_side) == ("S", 7.5, "below")
    assert not short.in_range


def test_fuller_build_shifts_alternate_up_one_size(chart, bmi):
    baseline = SizeMapper().map_baseline(155, bmi("overweight", 28.0), chart)
    assert (baseline.primary, baseline.alternate) == ("M", "L")
    assert baseline.bmi_shift_applied


def test_slimmer_build_shifts_alternate_down_one_size(chart, bmi):
    baseline = SizeMapper().map_baseline(155, bmi("underweight", 15.5), chart)
    assert (baseline.primary, baseline.alternate) == ("M", "S")


def test_athletic_build_keeps_size(chart, bmi):
    baseline = SizeMapper().map_baseline(155, bmi("athletic", 25.0), chart)
    assert baseline.alternate == baseline.primary == "M"
    assert not baseline.bmi_shift_blocked


def test_shift_past_end_of_chart_is_blocked(chart, bmi):
    baseline = SizeMapper().map_baseline(175, bmi("obese", 32.0), chart)
    assert baseline.alternate == baseline.primary == "XL"
    assert baseline.bmi_shift_blocked
