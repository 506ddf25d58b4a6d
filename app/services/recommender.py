from typing import Any, Mapping, Optional

import structlog
from pydantic import ValidationError as PydanticValidationError

from ..errors import ValidationError
from ..schemas.sizing import SizeRecommendation, SizingInput
from .anthropometrics import AnthropometricAnalyzer
from .calibrator import ReferenceGarmentCalibrator
from .composer import RecommendationComposer
from .confidence import ConfidenceScorer
from .risk import RiskClassifier
from .size_charts import SizeChartRepository, default_repository
from .size_mapper import SizeMapper


logger = structlog.get_logger(__name__)


def parse_sizing_input(payload: Any) -> SizingInput:
    """Validate a raw request body, naming the first offending field on failure."""
    if isinstance(payload, SizingInput):
        return payload
    if not isinstance(payload, Mapping):
        raise ValidationError("body", "must be a JSON object")
    try:
        return SizingInput.model_validate(dict(payload))
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(p) for p in first.get("loc", ())) or "body"
        raise ValidationError(field, first.get("msg", "invalid value")) from e


class Recommender:
    """Stateless size recommendation engine.

    Holds only references to the chart repository and the policy objects, so a
    single instance can serve concurrent requests.
    """

    def __init__(
        self,
        repository: Optional[SizeChartRepository] = None,
        analyzer: Optional[AnthropometricAnalyzer] = None,
        mapper: Optional[SizeMapper] = None,
        calibrator: Optional[ReferenceGarmentCalibrator] = None,
        classifier: Optional[RiskClassifier] = None,
        scorer: Optional[ConfidenceScorer] = None,
        composer: Optional[RecommendationComposer] = None,
    ) -> None:
        self.repository = repository or default_repository()
        self.analyzer = analyzer or AnthropometricAnalyzer()
        self.mapper = mapper or SizeMapper()
        self.calibrator = calibrator or ReferenceGarmentCalibrator()
        self.classifier = classifier or RiskClassifier()
        self.scorer = scorer or ConfidenceScorer()
        self.composer = composer or RecommendationComposer()

    def recommend(self, sizing_input: SizingInput, debug: bool = False) -> SizeRecommendation:
        chart = self.repository.get_chart(sizing_input.sport_id, sizing_input.gender, sizing_input.product_type_slug)
        bmi_analysis = self.analyzer.analyze(sizing_input.height_cm, sizing_input.weight_kg, sizing_input.gender)

        baseline = self.mapper.map_baseline(sizing_input.height_cm, bmi_analysis, chart)

        calibration = None
        if sizing_input.favorite_jersey is not None:
            calibration = self.calibrator.calibrate(sizing_input.favorite_jersey, baseline, chart, sizing_input.fit_preference)

        assessment = self.classifier.classify(sizing_input.height_cm, bmi_analysis, chart, baseline, calibration)
        breakdown = self.scorer.breakdown(
            assessment.risk_level,
            has_calibration=calibration is not None,
            agreement_score=calibration.agreement_score if calibration is not None else None,
        )

        recommendation = self.composer.compose(
            sizing_input,
            bmi_analysis,
            baseline,
            assessment,
            breakdown,
            calibration=calibration,
            chart=chart,
            debug=debug,
        )
        logger.info(
            "sizing_recommended",
            chart=str(chart.key),
            primary=recommendation.primary,
            alternate=recommendation.alternate,
            risk_level=recommendation.risk_level.value,
            confidence=recommendation.confidence,
            action=recommendation.recommended_action.value,
            calibrated=calibration is not None,
        )
        return recommendation

    def recommend_payload(self, payload: Any, debug: bool = False) -> SizeRecommendation:
        return self.recommend(parse_sizing_input(payload), debug=debug)
