"""BMI analysis from height and weight.

Category cut-offs are policy data owned by the size-chart team, passed in as
ordered bands of ``(upper_bound, category, message)``. Youth charts (boys and
girls) use a different table from adult charts.
"""
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Sequence

from ..schemas.sizing import BMIAnalysis, BMICategory, Gender


@dataclass(frozen=True)
class BMIBand:
    upper_bound: float  # exclusive
    category: BMICategory
    message: str


YOUTH_BMI_BANDS = (
    BMIBand(16.0, BMICategory.underweight, "Significantly below average weight for height"),
    BMIBand(17.0, BMICategory.underweight, "Below average weight for height"),
    BMIBand(24.0, BMICategory.normal, "Healthy weight for height"),
    BMIBand(27.0, BMICategory.athletic, "Above average (could be muscular/athletic)"),
    BMIBand(30.0, BMICategory.overweight, "Above healthy weight range"),
    BMIBand(float("inf"), BMICategory.obese, "Significantly above healthy weight range"),
)

ADULT_BMI_BANDS = (
    BMIBand(18.5, BMICategory.underweight, "Below healthy weight"),
    BMIBand(25.0, BMICategory.normal, "Healthy weight"),
    BMIBand(28.0, BMICategory.athletic, "Above average (may be muscular)"),
    BMIBand(30.0, BMICategory.overweight, "Above healthy weight"),
    BMIBand(float("inf"), BMICategory.obese, "Significantly above healthy weight"),
)

DEFAULT_BMI_BANDS: Dict[Gender, Sequence[BMIBand]] = {
    Gender.boys: YOUTH_BMI_BANDS,
    Gender.girls: YOUTH_BMI_BANDS,
    Gender.men: ADULT_BMI_BANDS,
    Gender.women: ADULT_BMI_BANDS,
    Gender.unisex: ADULT_BMI_BANDS,
}

EXTREME_CATEGORIES = {BMICategory.underweight, BMICategory.obese}


def calculate_bmi(height_cm: float, weight_kg: float) -> float:
    height_m = height_cm / 100
    return weight_kg / (height_m * height_m)


class AnthropometricAnalyzer:
    def __init__(self, bands: Optional[Mapping[Gender, Sequence[BMIBand]]] = None, default_bands: Sequence[BMIBand] = ADULT_BMI_BANDS) -> None:
        self.bands = dict(bands) if bands is not None else dict(DEFAULT_BMI_BANDS)
        self.default_bands = default_bands

    def _bands_for(self, gender: Optional[Gender]) -> Sequence[BMIBand]:
        if gender is None:
            return self.default_bands
        return self.bands.get(gender, self.default_bands)

    def analyze(self, height_cm: float, weight_kg: float, gender: Optional[Gender] = None) -> BMIAnalysis:
        bmi = calculate_bmi(height_cm, weight_kg)
        bands = self._bands_for(gender)
        band = next((b for b in bands if bmi < b.upper_bound), bands[-1])
        return BMIAnalysis(
            bmi=round(bmi, 1),
            category=band.category,
            is_extreme=band.category in EXTREME_CATEGORIES,
            message=band.message,
        )
