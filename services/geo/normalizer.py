"""GeoJSON feature normalization for map events.

Owns the live FeatureCollection. Every write goes through this module so that
Point coordinates are always stored rounded to 4 decimal places.
"""

from __future__ import annotations

import copy
import json
import math
import uuid
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from shared.logging.logger import get_logger

log = get_logger("geo.normalizer")

Feature = Dict[str, Any]

COORDINATE_PRECISION = 10000
EMPTY_FEATURE_COLLECTION = '{"type":"FeatureCollection","features":[]}'

# Tried in order; the first path that resolves to a list of mappings wins.
FEATURE_PATHS: Tuple[Tuple[str, ...], ...] = (
    ("features",),
    ("data", "features"),
    ("result", "data", "features"),
)


class InvalidShapeError(Exception):
    """Raised when no known path in a response yields a list of features."""


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def round_coordinate(value: float) -> float:
    """``round(x*10000)/10000`` with halves rounded away from zero."""
    scaled = abs(value) * COORDINATE_PRECISION
    return math.copysign(math.floor(scaled + 0.5), value) / COORDINATE_PRECISION


def _point_coordinates(feature: Mapping[str, Any]) -> Optional[List[Any]]:
    geometry = feature.get("geometry")
    if not isinstance(geometry, Mapping) or geometry.get("type") != "Point":
        return None
    coordinates = geometry.get("coordinates")
    if not isinstance(coordinates, Sequence) or isinstance(coordinates, str):
        return None
    if len(coordinates) < 2 or not (_is_number(coordinates[0]) and _is_number(coordinates[1])):
        return None
    if not (math.isfinite(coordinates[0]) and math.isfinite(coordinates[1])):
        return None
    return list(coordinates)


def round_coordinates_in_feature(feature: Mapping[str, Any]) -> Feature:
    """
    Return a copy of ``feature`` with Point lon/lat rounded to 4 decimals.

    Non-Point geometries and malformed coordinate arrays pass through
    unchanged (still copied, so the caller's object is never aliased).
    """
    result = copy.deepcopy(dict(feature))
    coordinates = _point_coordinates(result)
    if coordinates is None:
        return result

    coordinates[0] = round_coordinate(coordinates[0])
    coordinates[1] = round_coordinate(coordinates[1])
    result["geometry"]["coordinates"] = coordinates
    return result


def _resolve(raw: Mapping[str, Any], path: Sequence[str]) -> Any:
    node: Any = raw
    for key in path:
        if not isinstance(node, Mapping):
            return None
        node = node.get(key)
    return node


def extract_features(raw: Any) -> List[Feature]:
    """
    Pull the feature list out of a loosely-typed map response.

    Accepted shapes, in priority order:
      {"features": [...]}
      {"data": {"features": [...]}}
      {"result": {"data": {"features": [...]}}}
    """
    if not isinstance(raw, Mapping):
        raise InvalidShapeError(f"map payload must be an object, got {type(raw).__name__}")

    for path in FEATURE_PATHS:
        candidate = _resolve(raw, path)
        if isinstance(candidate, list) and all(isinstance(item, Mapping) for item in candidate):
            return [dict(item) for item in candidate]

    raise InvalidShapeError(
        "no feature list found at features, data.features or result.data.features"
    )


class GeoFeatureNormalizer:
    """Mutable FeatureCollection with rounding enforced on every write."""

    type = "FeatureCollection"

    def __init__(self, features: Optional[List[Mapping[str, Any]]] = None) -> None:
        self._features: List[Feature] = [
            round_coordinates_in_feature(f) for f in (features or [])
        ]
        self.update_trigger: str = str(uuid.uuid4())

    extract_features = staticmethod(extract_features)
    round_coordinates_in_feature = staticmethod(round_coordinates_in_feature)

    # ------------------------------------------------------------------
    # Stream entry point
    # ------------------------------------------------------------------

    def apply(self, raw: Any) -> int:
        """Replace the collection with the features carried by a map payload.

        Raises InvalidShapeError without touching the current collection.
        """
        features = extract_features(raw)
        self.set_features(features)
        self.update_trigger = str(uuid.uuid4())
        log.info(f"Feature collection updated with {len(features)} features")
        return len(features)

    # ------------------------------------------------------------------
    # Mutation API
    # ------------------------------------------------------------------

    def set_features(self, features: List[Mapping[str, Any]]) -> None:
        self._features = [round_coordinates_in_feature(f) for f in features]

    def set_feature(self, feature: Mapping[str, Any], index: Optional[int] = None) -> Optional[int]:
        """Replace the feature at ``index``, or append when ``index`` is None or
        equal to the current length. Returns the index written, or None when
        ``index`` is out of range."""
        rounded = round_coordinates_in_feature(feature)
        if index is None:
            self._features.append(rounded)
            return len(self._features) - 1
        if index < 0 or index > len(self._features):
            return None
        if index == len(self._features):
            self._features.append(rounded)
        else:
            self._features[index] = rounded
        return index

    def update_feature(self, feature: Mapping[str, Any], index: int) -> bool:
        if index < 0 or index >= len(self._features):
            return False
        self._features[index] = round_coordinates_in_feature(feature)
        return True

    def remove_feature(self, index: int) -> Optional[Feature]:
        if index < 0 or index >= len(self._features):
            return None
        return self._features.pop(index)

    def remove_all_features(self) -> None:
        self._features.clear()

    # ------------------------------------------------------------------
    # Read API
    # ------------------------------------------------------------------

    def get_feature(self, index: int) -> Optional[Feature]:
        if index < 0 or index >= len(self._features):
            return None
        return copy.deepcopy(self._features[index])

    @property
    def feature_count(self) -> int:
        return len(self._features)

    @property
    def features(self) -> List[Feature]:
        return copy.deepcopy(self._features)

    def extract_coordinates(self) -> List[Tuple[float, float]]:
        """(latitude, longitude) of every Point feature, in collection order."""
        coords: List[Tuple[float, float]] = []
        for feature in self._features:
            point = _point_coordinates(feature)
            if point is not None:
                coords.append((float(point[1]), float(point[0])))
        return coords

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "features": self.features}

    def to_canonical_string(self) -> str:
        """
        Deterministic compact JSON for map renderers.

        Falls back to an empty collection if the features cannot be encoded
        (non-finite numbers, non-JSON values).
        """
        try:
            encoded = json.dumps(
                self._features,
                sort_keys=True,
                separators=(",", ":"),
                allow_nan=False,
            )
        except (TypeError, ValueError) as e:
            log.error(f"Failed to serialize feature collection: {e}")
            return EMPTY_FEATURE_COLLECTION
        return f'{{"type":"{self.type}","features":{encoded}}}'


__all__ = [
    "EMPTY_FEATURE_COLLECTION",
    "FEATURE_PATHS",
    "GeoFeatureNormalizer",
    "InvalidShapeError",
    "extract_features",
    "round_coordinate",
    "round_coordinates_in_feature",
]
