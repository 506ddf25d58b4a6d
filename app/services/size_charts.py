"""Read-only size chart reference data.

Charts are keyed by ``ChartKey(sport, gender, product_type)`` and validated
once when a chart document is loaded: rows are sorted by height and must form
contiguous, non-overlapping ``[min, max)`` bands. The repository serves an
immutable ``ChartSnapshot``; ``replace()`` swaps the whole snapshot in a single
assignment so concurrent readers never see a half-updated chart set.
"""
import json
import time
from dataclasses import dataclass, field
from functools import lru_cache
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import structlog
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from ..config import settings
from ..errors import ChartDataError, ChartNotFoundError


logger = structlog.get_logger(__name__)


SIZE_LABEL_ALIASES = {"XXXL": "3XL", "2XXL": "2XL"}

# Size step applied to the height-based size for each BMI category.
DEFAULT_BMI_ADJUSTMENTS: Dict[str, int] = {
    "underweight": -1,
    "normal": 0,
    "athletic": 0,
    "overweight": 1,
    "obese": 1,
}

# Bottoms are measured at the waist and by leg length rather than chest and torso.
BOTTOM_PRODUCT_TYPES = {"shorts", "tracksuit-pants", "pants"}

_BOUNDARY_EPSILON = 1e-6


def normalize_size_label(label: str) -> str:
    label = label.strip().upper()
    return SIZE_LABEL_ALIASES.get(label, label)


def _norm(part: Any) -> str:
    value = getattr(part, "value", part)
    return str(value).strip().lower() if value is not None else ""


@dataclass(frozen=True)
class ChartKey:
    sport: str
    gender: str
    product_type: str

    @classmethod
    def of(cls, sport: Any, gender: Any, product_type: Any) -> "ChartKey":
        return cls(_norm(sport), _norm(gender), _norm(product_type))

    def __str__(self) -> str:
        return f"{self.sport}/{self.gender}/{self.product_type}"


@dataclass(frozen=True)
class SizeChartEntry:
    sport: str
    gender: str
    product_type: str
    size: str
    height_min_cm: float
    height_max_cm: float
    chest_width_cm: float
    jersey_length_cm: float
    bmi_adjustments: Mapping[str, int] = field(default_factory=lambda: MappingProxyType(dict(DEFAULT_BMI_ADJUSTMENTS)))
    shorts_length_cm: Optional[float] = None
    sleeve_length_cm: Optional[float] = None
    waist_width_cm: Optional[float] = None
    hip_width_cm: Optional[float] = None
    weight_min_kg: Optional[float] = None
    weight_max_kg: Optional[float] = None

    @property
    def midpoint_cm(self) -> float:
        return (self.height_min_cm + self.height_max_cm) / 2

    def relevant_length(self) -> float:
        if self.product_type in BOTTOM_PRODUCT_TYPES:
            return self.shorts_length_cm or self.jersey_length_cm
        return self.jersey_length_cm

    def relevant_width(self) -> float:
        if self.product_type in BOTTOM_PRODUCT_TYPES:
            return self.waist_width_cm or self.chest_width_cm
        return self.chest_width_cm

    def bmi_step(self, category: Any) -> int:
        step = self.bmi_adjustments.get(_norm(category), 0)
        return max(-1, min(1, int(step)))


@dataclass(frozen=True)
class SizeChart:
    key: ChartKey
    entries: Tuple[SizeChartEntry, ...]

    @property
    def min_height_cm(self) -> float:
        return self.entries[0].height_min_cm

    @property
    def max_height_cm(self) -> float:
        return self.entries[-1].height_max_cm

    @property
    def labels(self) -> List[str]:
        return [e.size for e in self.entries]

    @property
    def boundaries(self) -> List[float]:
        """Every band edge, including both outer edges of the chart."""
        return [self.entries[0].height_min_cm] + [e.height_max_cm for e in self.entries]

    def step(self, index: int, delta: int) -> int:
        return max(0, min(len(self.entries) - 1, index + delta))


@dataclass(frozen=True)
class ChartSnapshot:
    charts: Mapping[ChartKey, SizeChart]
    sport_aliases: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    version: Optional[str] = None
    loaded_at: float = field(default_factory=time.time)


# --- chart document parsing -------------------------------------------------


class ChartRowDocument(BaseModel):
    size: str = Field(..., min_length=1)
    height_min_cm: float = Field(..., gt=0)
    height_max_cm: float = Field(..., gt=0)
    chest_width_cm: float = Field(..., gt=0)
    jersey_length_cm: float = Field(..., gt=0)
    shorts_length_cm: Optional[float] = None
    sleeve_length_cm: Optional[float] = None
    waist_width_cm: Optional[float] = None
    hip_width_cm: Optional[float] = None
    weight_min_kg: Optional[float] = None
    weight_max_kg: Optional[float] = None
    bmi_adjustments: Optional[Dict[str, int]] = None


class ChartDocument(BaseModel):
    sport: str = Field(..., min_length=1)
    gender: str = Field(..., min_length=1)
    product_type: str = Field(..., min_length=1)
    bmi_adjustments: Dict[str, int] = Field(default_factory=dict)
    sizes: List[ChartRowDocument] = Field(..., min_length=1)


class ChartsDocument(BaseModel):
    version: Optional[str] = None
    sport_aliases: Dict[str, str] = Field(default_factory=dict)
    charts: List[ChartDocument] = Field(default_factory=list)


def build_chart(key: ChartKey, entries: Iterable[SizeChartEntry]) -> SizeChart:
    """Sort rows by height and enforce the band invariants."""
    rows = sorted(entries, key=lambda e: e.height_min_cm)
    if not rows:
        raise ChartDataError("chart has no sizes", key=str(key))
    seen = set()
    for row in rows:
        if row.height_max_cm <= row.height_min_cm:
            raise ChartDataError(f"size {row.size} has an empty height range", key=str(key))
        if row.size in seen:
            raise ChartDataError(f"size {row.size} listed twice", key=str(key))
        seen.add(row.size)
    for prev, nxt in zip(rows, rows[1:]):
        gap = nxt.height_min_cm - prev.height_max_cm
        if gap > _BOUNDARY_EPSILON:
            raise ChartDataError(f"gap between {prev.size} and {nxt.size} ({prev.height_max_cm}-{nxt.height_min_cm}cm)", key=str(key))
        if gap < -_BOUNDARY_EPSILON:
            raise ChartDataError(f"{prev.size} overlaps {nxt.size}", key=str(key))
    return SizeChart(key=key, entries=tuple(rows))


def _chart_from_document(doc: ChartDocument) -> SizeChart:
    key = ChartKey.of(doc.sport, doc.gender, doc.product_type)
    if not all((key.sport, key.gender, key.product_type)):
        raise ChartDataError("chart key parts must not be blank", key=str(key))
    entries = []
    for row in doc.sizes:
        adjustments = dict(DEFAULT_BMI_ADJUSTMENTS)
        adjustments.update(doc.bmi_adjustments)
        if row.bmi_adjustments:
            adjustments.update(row.bmi_adjustments)
        entries.append(
            SizeChartEntry(
                sport=key.sport,
                gender=key.gender,
                product_type=key.product_type,
                size=normalize_size_label(row.size),
                height_min_cm=row.height_min_cm,
                height_max_cm=row.height_max_cm,
                chest_width_cm=row.chest_width_cm,
                jersey_length_cm=row.jersey_length_cm,
                bmi_adjustments=MappingProxyType({_norm(k): v for k, v in adjustments.items()}),
                shorts_length_cm=row.shorts_length_cm,
                sleeve_length_cm=row.sleeve_length_cm,
                waist_width_cm=row.waist_width_cm,
                hip_width_cm=row.hip_width_cm,
                weight_min_kg=row.weight_min_kg,
                weight_max_kg=row.weight_max_kg,
            )
        )
    return build_chart(key, entries)


def parse_charts_document(payload: Mapping[str, Any]) -> ChartSnapshot:
    try:
        doc = ChartsDocument.model_validate(payload)
    except PydanticValidationError as e:
        raise ChartDataError(f"invalid chart document: {e}") from e

    charts: Dict[ChartKey, SizeChart] = {}
    for chart_doc in doc.charts:
        chart = _chart_from_document(chart_doc)
        if chart.key in charts:
            raise ChartDataError("duplicate chart", key=str(chart.key))
        charts[chart.key] = chart

    aliases = {_norm(k): _norm(v) for k, v in doc.sport_aliases.items()}
    return ChartSnapshot(charts=MappingProxyType(charts), sport_aliases=MappingProxyType(aliases), version=doc.version)


def snapshot_from_charts(charts: Iterable[SizeChart], sport_aliases: Optional[Mapping[str, str]] = None) -> ChartSnapshot:
    by_key = {}
    for chart in charts:
        if chart.key in by_key:
            raise ChartDataError("duplicate chart", key=str(chart.key))
        by_key[chart.key] = chart
    aliases = {_norm(k): _norm(v) for k, v in (sport_aliases or {}).items()}
    return ChartSnapshot(charts=MappingProxyType(by_key), sport_aliases=MappingProxyType(aliases))


# --- repository -------------------------------------------------------------


class SizeChartRepository:
    def __init__(self, snapshot: Optional[ChartSnapshot] = None) -> None:
        self._snapshot = snapshot or snapshot_from_charts([])

    @classmethod
    def from_document(cls, payload: Mapping[str, Any]) -> "SizeChartRepository":
        return cls(parse_charts_document(payload))

    @classmethod
    def from_file(cls, path: str) -> "SizeChartRepository":
        with open(path, "r", encoding="utf-8") as f:
            payload = json.load(f)
        repo = cls.from_document(payload)
        logger.info("charts_loaded", path=path, charts=len(repo.snapshot.charts), version=repo.snapshot.version)
        return repo

    @property
    def snapshot(self) -> ChartSnapshot:
        return self._snapshot

    def replace(self, snapshot: ChartSnapshot) -> None:
        self._snapshot = snapshot
        logger.info("charts_replaced", charts=len(snapshot.charts), version=snapshot.version)

    def keys(self) -> List[ChartKey]:
        return sorted(self._snapshot.charts, key=str)

    def get_chart(self, sport: Any, gender: Any, product_type: Any) -> SizeChart:
        snapshot = self._snapshot
        key = ChartKey.of(sport, gender, product_type)
        key = ChartKey(snapshot.sport_aliases.get(key.sport, key.sport), key.gender, key.product_type)
        chart = snapshot.charts.get(key)
        if chart is None:
            logger.warning("chart_not_found", key=str(key))
            raise ChartNotFoundError(key.sport, key.gender, key.product_type)
        return chart

    def lookup(self, sport: Any, gender: Any, product_type: Any) -> Tuple[SizeChartEntry, ...]:
        return self.get_chart(sport, gender, product_type).entries


@lru_cache(maxsize=1)
def default_repository() -> SizeChartRepository:
    return SizeChartRepository.from_file(settings.size_charts_path)
