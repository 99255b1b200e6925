"""
Catalog Size Matching
=====================

Nearest-size search per garment class: chest drives tops, hips drive
bottoms. Confidence drops linearly with the fit gap and is floored so a
matched size is never reported as low confidence.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union

from .catalog import CatalogEntry, CatalogStore
from .config import DEFAULT_ROW, FallbackConfig, GarmentClass, Gender, MatchingConfig
from .exceptions import NoCandidatesError
from .measurement_engine import MeasurementSet


@dataclass
class RecommendationResult:
    """Recommended top and bottom sizes for one session"""
    top_size: str
    bottom_size: str
    top_entry: Optional[CatalogEntry]
    bottom_entry: Optional[CatalogEntry]
    confidence_top: float
    confidence_bottom: float
    is_fallback: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'top_size': self.top_size,
            'bottom_size': self.bottom_size,
            'top_entry': self.top_entry.to_dict() if self.top_entry else None,
            'bottom_entry': self.bottom_entry.to_dict() if self.bottom_entry else None,
            'confidence_top': self.confidence_top,
            'confidence_bottom': self.confidence_bottom,
            'is_fallback': self.is_fallback,
        }


@dataclass
class SizeMatch:
    size: str
    entry: CatalogEntry
    difference: float


def match_confidence(difference: float, config: Optional[MatchingConfig] = None) -> float:
    """max(floor, ceiling - min(ceiling, diff * penalty)), in [floor, ceiling]"""
    config = config or MatchingConfig()
    penalty = min(config.confidence_ceiling, difference * config.penalty_per_cm)
    return round(max(config.confidence_floor, config.confidence_ceiling - penalty), 1)


def find_nearest_size(entries: List[CatalogEntry], target: Optional[float], attribute: str) -> Optional[SizeMatch]:
    """
    Size whose ``attribute`` is closest to ``target``.

    Sizes missing the attribute are skipped. Ties keep the first size seen,
    in entry order then size order.
    """

    if target is None:
        return None

    best = None
    for entry in entries:
        for size_name, spec in entry.sizes.items():
            value = getattr(spec, attribute)
            if value is None:
                continue
            diff = abs(value - target)
            if best is None or diff < best.difference:
                best = SizeMatch(size=size_name, entry=entry, difference=diff)
    return best


class RecommendationFallbackProvider:
    """Fixed grade/gender size labels used when matching is impossible"""

    def __init__(self, fallback: Optional[FallbackConfig] = None, matching: Optional[MatchingConfig] = None):
        self.fallback = fallback or FallbackConfig()
        self.matching = matching or MatchingConfig()
        self.logger = logging.getLogger(__name__)

    def sizes(self, grade_level: str, gender: Union[Gender, str]) -> Tuple[str, str]:
        gender_key = gender.value if isinstance(gender, Gender) else str(gender)
        row = self.fallback.sizes.get(grade_level)
        if isinstance(row, dict) and gender_key in row:
            labels = row[gender_key]
        else:
            labels = self.fallback.sizes[DEFAULT_ROW]
        return labels['top'], labels['bottom']

    def recommend(self, grade_level: str, gender: Union[Gender, str]) -> RecommendationResult:
        top, bottom = self.sizes(grade_level, gender)
        confidence = self.matching.fallback_confidence
        self.logger.warning(f"Using estimated sizes for {grade_level} / {gender}: {top}, {bottom}")
        return RecommendationResult(
            top_size=top,
            bottom_size=bottom,
            top_entry=None,
            bottom_entry=None,
            confidence_top=confidence,
            confidence_bottom=confidence,
            is_fallback=True,
        )


class SizeMatcher:
    """Matches target measurements against one catalog partition"""

    def __init__(self, catalog: CatalogStore, config: Optional[MatchingConfig] = None,
                 fallback: Optional[RecommendationFallbackProvider] = None):
        self.catalog = catalog
        self.config = config or MatchingConfig()
        self.fallback = fallback or RecommendationFallbackProvider(matching=self.config)
        self.logger = logging.getLogger(__name__)

    def categories(self, garment_class: GarmentClass) -> List[str]:
        if garment_class is GarmentClass.TOP:
            return list(self.config.top_categories)
        return list(self.config.bottom_categories)

    def fetch_candidates(self, garment_class: GarmentClass, gender: Union[Gender, str],
                         grade_level: str) -> List[CatalogEntry]:
        entries = []
        for category in self.categories(garment_class):
            entries.extend(self.catalog.fetch_entries(gender, grade_level, category))
        self.logger.info(f"{len(entries)} {garment_class.value} candidates for {grade_level} / {gender}")
        return entries

    def match(self, measurements: MeasurementSet, gender: Union[Gender, str],
              grade_level: str) -> RecommendationResult:
        """
        Recommend a top and bottom size.

        Raises:
            NoCandidatesError: a garment class had no comparable size
        """

        top_entries = self.fetch_candidates(GarmentClass.TOP, gender, grade_level)
        bottom_entries = self.fetch_candidates(GarmentClass.BOTTOM, gender, grade_level)

        top = find_nearest_size(top_entries, measurements.chest_cm, 'chest')
        bottom = find_nearest_size(bottom_entries, measurements.hip_cm, 'hips')

        if top is None or bottom is None:
            missing = GarmentClass.TOP if top is None else GarmentClass.BOTTOM
            raise NoCandidatesError(f"No comparable {missing.value} sizes for {grade_level} / {gender}")

        result = RecommendationResult(
            top_size=top.size,
            bottom_size=bottom.size,
            top_entry=top.entry,
            bottom_entry=bottom.entry,
            confidence_top=match_confidence(top.difference, self.config),
            confidence_bottom=match_confidence(bottom.difference, self.config),
        )

        self.logger.info(f"Recommended top={result.top_size} ({result.confidence_top}%), "
                         f"bottom={result.bottom_size} ({result.confidence_bottom}%)")
        return result

    def recommend(self, measurements: MeasurementSet, gender: Union[Gender, str],
                  grade_level: str) -> RecommendationResult:
        """Match, routing an exhausted search to the fallback table"""
        try:
            return self.match(measurements, gender, grade_level)
        except NoCandidatesError as e:
            self.logger.warning(f"{e}; falling back to grade defaults")
            return self.fallback.recommend(grade_level, gender)
