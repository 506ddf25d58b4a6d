from dataclasses import dataclass
from typing import Optional, Tuple

import structlog

from ..schemas.sizing import BMIAnalysis
from .size_charts import SizeChart, SizeChartEntry


logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Baseline:
    """Height/BMI based size pair, before any reference-garment calibration."""

    primary: str
    alternate: str
    primary_index: int
    alternate_index: int
    entry: SizeChartEntry
    bmi_step: int = 0
    # How far the height sits outside the whole chart (0 when inside) and on which side.
    out_of_range_cm: float = 0.0
    out_of_range_side: Optional[str] = None

    @property
    def in_range(self) -> bool:
        return self.out_of_range_side is None

    @property
    def bmi_shift_applied(self) -> bool:
        return self.alternate_index != self.primary_index

    @property
    def bmi_shift_blocked(self) -> bool:
        """BMI asked for a step the chart has no size for."""
        return self.bmi_step != 0 and not self.bmi_shift_applied


def locate_height(height_cm: float, chart: SizeChart) -> Tuple[int, float, Optional[str]]:
    """Return (row index, cm outside the chart, side) for a height.

    Rows cover ``[min, max)`` so a height on a shared edge lands in the larger
    size. The chart's top edge belongs to the last row.
    """
    entries = chart.entries
    last = len(entries) - 1
    if height_cm < entries[0].height_min_cm:
        return 0, entries[0].height_min_cm - height_cm, "below"
    if height_cm > entries[last].height_max_cm:
        return last, height_cm - entries[last].height_max_cm, "above"
    for i, entry in enumerate(entries):
        if entry.height_min_cm <= height_cm < entry.height_max_cm:
            return i, 0.0, None
    return last, 0.0, None


class SizeMapper:
    def map_baseline(self, height_cm: float, bmi_analysis: BMIAnalysis, chart: SizeChart) -> Baseline:
        index, outside_cm, side = locate_height(height_cm, chart)
        entry = chart.entries[index]
        step = entry.bmi_step(bmi_analysis.category)
        alt_index = chart.step(index, step)
        baseline = Baseline(
            primary=entry.size,
            alternate=chart.entries[alt_index].size,
            primary_index=index,
            alternate_index=alt_index,
            entry=entry,
            bmi_step=step,
            out_of_range_cm=round(outside_cm, 2),
            out_of_range_side=side,
        )
        logger.debug(
            "baseline_mapped",
            chart=str(chart.key),
            height_cm=height_cm,
            bmi_category=bmi_analysis.category.value,
            primary=baseline.primary,
            alternate=baseline.alternate,
            out_of_range_cm=baseline.out_of_range_cm,
        )
        return baseline
