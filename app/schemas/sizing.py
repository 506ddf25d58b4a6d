from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class FitPreference(str, Enum):
    slim = "slim"
    regular = "regular"
    relaxed = "relaxed"


class FitFeeling(str, Enum):
    tight = "tight"
    perfect = "perfect"
    loose = "loose"


class Gender(str, Enum):
    boys = "boys"
    girls = "girls"
    men = "men"
    women = "women"
    unisex = "unisex"


class BMICategory(str, Enum):
    underweight = "underweight"
    normal = "normal"
    athletic = "athletic"
    overweight = "overweight"
    obese = "obese"


class Severity(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class RiskLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        return _RISK_RANK[self]

    @classmethod
    def from_severity(cls, severity: Severity) -> "RiskLevel":
        return cls(severity.value)


_RISK_RANK = {RiskLevel.LOW: 0, RiskLevel.MEDIUM: 1, RiskLevel.HIGH: 2, RiskLevel.CRITICAL: 3}


class EdgeCaseType(str, Enum):
    HEIGHT_OUT_OF_RANGE = "HEIGHT_OUT_OF_RANGE"
    BOUNDARY_PROXIMITY = "BOUNDARY_PROXIMITY"
    BMI_EXTREME = "BMI_EXTREME"
    BMI_SIZE_CONFLICT = "BMI_SIZE_CONFLICT"
    CALIBRATION_DISAGREEMENT = "CALIBRATION_DISAGREEMENT"


class RecommendedAction(str, Enum):
    ORDER_NOW = "ORDER_NOW"
    ORDER_WITH_INFO = "ORDER_WITH_INFO"
    CONTACT_RECOMMENDED = "CONTACT_RECOMMENDED"
    MUST_CONTACT = "MUST_CONTACT"


class SizingModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


# Plausible human ranges; anything outside is rejected before sizing.
HEIGHT_RANGE_CM = (100.0, 250.0)
WEIGHT_RANGE_KG = (15.0, 250.0)


class FavoriteJersey(SizingModel):
    """A garment the buyer already owns, measured flat, plus how it fits them."""

    length_cm: float = Field(..., ge=40, le=120)
    width_cm: float = Field(..., ge=30, le=80)
    fit_feeling: FitFeeling


class SizingInput(SizingModel):
    height_cm: float = Field(..., ge=HEIGHT_RANGE_CM[0], le=HEIGHT_RANGE_CM[1])
    weight_kg: float = Field(..., ge=WEIGHT_RANGE_KG[0], le=WEIGHT_RANGE_KG[1])
    fit_preference: FitPreference = FitPreference.regular
    sport_id: str = Field(..., min_length=1)
    product_type_slug: str = Field(..., min_length=1)
    gender: Gender
    favorite_jersey: Optional[FavoriteJersey] = None

    @field_validator("sport_id", mode="before")
    @classmethod
    def _coerce_sport_id(cls, v: Any) -> Any:
        # Storefront sends numeric sport ids; charts are keyed by slug or alias.
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator("sport_id", "product_type_slug")
    @classmethod
    def _strip(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v


class BMIAnalysis(SizingModel):
    bmi: float
    category: BMICategory
    is_extreme: bool
    message: str


class EdgeCase(SizingModel):
    type: EdgeCaseType
    severity: Severity
    message: str


class ConfidenceBreakdown(SizingModel):
    base_score: int
    calibration_adjustment: int
    total: int


class SizeRecommendation(SizingModel):
    title: str
    subtitle: str
    primary: str
    alternate: str
    confidence: int = Field(..., ge=0, le=100)
    risk_level: RiskLevel
    rationale: List[str] = Field(..., min_length=1)
    warnings: List[str] = Field(default_factory=list)
    edge_cases: List[EdgeCase] = Field(default_factory=list)
    bmi_analysis: Optional[BMIAnalysis] = None
    recommended_action: RecommendedAction
    should_show_contact: bool
    confidence_breakdown: Optional[ConfidenceBreakdown] = None
    debug: Optional[Dict[str, Any]] = None


class SizeChartRowOut(SizingModel):
    size: str
    height_min_cm: float
    height_max_cm: float
    chest_width_cm: float
    jersey_length_cm: float
    shorts_length_cm: Optional[float] = None
    sleeve_length_cm: Optional[float] = None
    waist_width_cm: Optional[float] = None
    hip_width_cm: Optional[float] = None
    weight_min_kg: Optional[float] = None
    weight_max_kg: Optional[float] = None


class SizeChartOut(SizingModel):
    sport: str
    gender: str
    product_type: str
    count: int
    sizes: List[SizeChartRowOut]
