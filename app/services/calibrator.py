"""Calibrate the chart-based size with a garment the buyer already owns.

The owned garment's flat length and width identify the chart size it most
resembles; the buyer's fit feeling then moves that estimate one size up
(tight) or down (loose). The result is compared with the height/BMI baseline
and fed to risk and confidence. It never silently replaces the baseline:
a disagreement keeps the baseline primary and offers the garment-derived size
as the alternate.
"""
from dataclasses import dataclass
from typing import Dict, List

import structlog

from ..schemas.sizing import FavoriteJersey, FitFeeling, FitPreference
from .size_charts import SizeChart
from .size_mapper import Baseline


logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CalibrationWeights:
    length: float = 1.0
    width: float = 1.0


FIT_FEELING_STEPS: Dict[FitFeeling, int] = {
    FitFeeling.tight: 1,
    FitFeeling.perfect: 0,
    FitFeeling.loose: -1,
}

_TIE_EPSILON = 1e-9


@dataclass(frozen=True)
class Calibration:
    adjusted_primary: str
    adjusted_alternate: str
    agreement_score: float
    inferred_size: str
    calibrated_size: str
    fit_feeling: FitFeeling
    length_diff_cm: float
    width_diff_cm: float
    step_clamped: bool = False


class ReferenceGarmentCalibrator:
    def __init__(self, weights: CalibrationWeights | None = None) -> None:
        self.weights = weights or CalibrationWeights()

    def distances(self, favorite_jersey: FavoriteJersey, chart: SizeChart) -> List[float]:
        return [
            self.weights.length * abs(e.relevant_length() - favorite_jersey.length_cm)
            + self.weights.width * abs(e.relevant_width() - favorite_jersey.width_cm)
            for e in chart.entries
        ]

    def infer_index(self, favorite_jersey: FavoriteJersey, chart: SizeChart, fit_preference: FitPreference = FitPreference.regular) -> int:
        """Index of the chart row nearest to the owned garment.

        Equidistant rows go to the smaller size for a slim preference and to
        the larger size otherwise.
        """
        dists = self.distances(favorite_jersey, chart)
        best = min(dists)
        tied = [i for i, d in enumerate(dists) if d - best <= _TIE_EPSILON]
        return tied[0] if fit_preference == FitPreference.slim else tied[-1]

    def calibrate(
        self,
        favorite_jersey: FavoriteJersey,
        baseline: Baseline,
        chart: SizeChart,
        fit_preference: FitPreference = FitPreference.regular,
    ) -> Calibration:
        inferred_index = self.infer_index(favorite_jersey, chart, fit_preference)
        wanted_step = FIT_FEELING_STEPS[favorite_jersey.fit_feeling]
        calibrated_index = chart.step(inferred_index, wanted_step)

        inferred = chart.entries[inferred_index]
        calibrated = chart.entries[calibrated_index].size

        votes = (baseline.primary, baseline.alternate)
        agreement = sum(1 for label in votes if label == calibrated) / len(votes)

        if calibrated == baseline.primary:
            primary, alternate = baseline.primary, baseline.alternate
        elif calibrated == baseline.alternate:
            # Garment and build both point away from the height-based size.
            primary, alternate = baseline.alternate, baseline.primary
        else:
            primary, alternate = baseline.primary, calibrated

        result = Calibration(
            adjusted_primary=primary,
            adjusted_alternate=alternate,
            agreement_score=agreement,
            inferred_size=inferred.size,
            calibrated_size=calibrated,
            fit_feeling=favorite_jersey.fit_feeling,
            length_diff_cm=round(inferred.relevant_length() - favorite_jersey.length_cm, 2),
            width_diff_cm=round(inferred.relevant_width() - favorite_jersey.width_cm, 2),
            step_clamped=wanted_step != 0 and calibrated_index == inferred_index,
        )
        logger.debug(
            "calibrated",
            chart=str(chart.key),
            inferred=result.inferred_size,
            calibrated=result.calibrated_size,
            baseline_primary=baseline.primary,
            agreement=result.agreement_score,
        )
        return result
