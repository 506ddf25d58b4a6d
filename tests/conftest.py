import copy

import pytest

from app.schemas.sizing import BMIAnalysis, BMICategory
from app.services.size_charts import SizeChartRepository


# Four contiguous 10cm bands: S [140,150) M [150,160) L [160,170) XL [170,180]
SYNTHETIC_DOCUMENT = {
    "version": "test",
    "sport_aliases": {"1": "soccer"},
    "charts": [
        {
            "sport": "soccer",
            "gender": "boys",
            "product_type": "jersey",
            "sizes": [
                {"size": "S", "height_min_cm": 140, "height_max_cm": 150, "chest_width_cm": 44, "jersey_length_cm": 60},
                {"size": "M", "height_min_cm": 150, "height_max_cm": 160, "chest_width_cm": 47, "jersey_length_cm": 64},
                {"size": "L", "height_min_cm": 160, "height_max_cm": 170, "chest_width_cm": 50, "jersey_length_cm": 68},
                {"size": "XL", "height_min_cm": 170, "height_max_cm": 180, "chest_width_cm": 53, "jersey_length_cm": 71},
            ],
        }
    ],
}


@pytest.fixture
def document():
    return copy.deepcopy(SYNTHETIC_DOCUMENT)


@pytest.fixture
def repository(document):
    return SizeChartRepository.from_document(document)


@pytest.fixture
def chart(repository):
    return repository.get_chart("soccer", "boys", "jersey")


@pytest.fixture
def bmi():
    """Build a BMIAnalysis for a category without going through height/weight."""

    def _make(category: str = "normal", value: float = 20.0) -> BMIAnalysis:
        cat = BMICategory(category)
        return BMIAnalysis(
            bmi=value,
            category=cat,
            is_extreme=cat in (BMICategory.underweight, BMICategory.obese),
            message="test",
        )

    return _make
