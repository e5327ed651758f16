"""
Detection payload normalization.

Turns a hosted detection response into canonical plan elements:

1. Make sure the source image dimensions are known. They come from the
   payload's ``image`` block when present, otherwise from decoding the source
   image (the only suspension point of the pipeline).
2. Convert each prediction from center/size pixels to ``(ymin, xmin, ymax, xmax)``
   on the 0-1000 grid. Predictions already carrying a canonical ``box_2d`` are
   passed through.

Zero dimensions fall back to a 1000x1000 denominator and mark the result as
degraded instead of failing.
"""
import asyncio
import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple

import cv2
import numpy as np

from floorplan_ai.categories import UNKNOWN, CategoryRegistry, default_registry
from floorplan_ai.config import CANONICAL_SCALE
from floorplan_ai.errors import MalformedDetectionResult
from floorplan_ai.geometry import center_to_corners, clamp_box, round_half_up, to_canonical
from floorplan_ai.models import PlanElement

logger = logging.getLogger(__name__)


@dataclass
class NormalizationResult:
    elements: List[PlanElement] = field(default_factory=list)
    image_width: int = 0
    image_height: int = 0
    degraded: bool = False


def _number(value: Any, name: str, index: int) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MalformedDetectionResult(
            details=f"prediction {index}: '{name}' must be numeric, got {value!r}"
        )
    if not math.isfinite(value):
        raise MalformedDetectionResult(details=f"prediction {index}: '{name}' is not finite")
    return float(value)


def _field(prediction: Mapping, name: str, index: int) -> Any:
    if name not in prediction:
        raise MalformedDetectionResult(details=f"prediction {index}: missing '{name}'")
    return prediction[name]


def _predictions(raw: Any) -> List[Mapping]:
    if not isinstance(raw, Mapping):
        raise MalformedDetectionResult(details="detection payload must be a JSON object")
    predictions = raw.get("predictions")
    if not isinstance(predictions, list):
        raise MalformedDetectionResult(details="'predictions' must be a list")
    for index, prediction in enumerate(predictions):
        if not isinstance(prediction, Mapping):
            raise MalformedDetectionResult(details=f"prediction {index} must be an object")
    return predictions


def payload_dimensions(raw: Any) -> Tuple[int, int]:
    """Image (width, height) reported by the service, or (0, 0) when absent."""
    image = raw.get("image") if isinstance(raw, Mapping) else None
    if not isinstance(image, Mapping):
        return 0, 0
    width, height = image.get("width"), image.get("height")
    if isinstance(width, bool) or isinstance(height, bool):
        return 0, 0
    if not isinstance(width, (int, float)) or not isinstance(height, (int, float)):
        return 0, 0
    if not (math.isfinite(width) and math.isfinite(height)) or width <= 0 or height <= 0:
        return 0, 0
    return int(width), int(height)


def image_dimensions(image_bytes: Optional[bytes]) -> Tuple[int, int]:
    """Decode an encoded image and return its (width, height), or (0, 0)."""
    if not image_bytes:
        return 0, 0
    nparr = np.frombuffer(image_bytes, np.uint8)
    image = cv2.imdecode(nparr, cv2.IMREAD_UNCHANGED)
    if image is None:
        logger.warning("Could not decode source image to read its dimensions")
        return 0, 0
    height, width = image.shape[:2]
    return int(width), int(height)


def _detected_box(prediction: Mapping, index: int, width: float, height: float):
    if "box_2d" in prediction:
        box = prediction["box_2d"]
        if not isinstance(box, (list, tuple)) or len(box) != 4:
            raise MalformedDetectionResult(
                details=f"prediction {index}: 'box_2d' must have four coordinates"
            )
        ymin, xmin, ymax, xmax = (_number(v, "box_2d", index) for v in box)
        return clamp_box(ymin, xmin, ymax, xmax)

    x = _number(_field(prediction, "x", index), "x", index)
    y = _number(_field(prediction, "y", index), "y", index)
    w = _number(_field(prediction, "width", index), "width", index)
    h = _number(_field(prediction, "height", index), "height", index)
    if w < 0 or h < 0:
        raise MalformedDetectionResult(details=f"prediction {index}: negative width or height")

    ymin, xmin, ymax, xmax = center_to_corners(x, y, w, h)
    return clamp_box(
        to_canonical(ymin, height),
        to_canonical(xmin, width),
        to_canonical(ymax, height),
        to_canonical(xmax, width),
    )


def _to_element(prediction: Mapping, index: int, width: float, height: float,
                registry: CategoryRegistry) -> PlanElement:
    source_class = _field(prediction, "class", index)
    if not isinstance(source_class, str):
        raise MalformedDetectionResult(details=f"prediction {index}: 'class' must be a string")

    confidence = prediction.get("confidence")
    confidence = None if confidence is None else _number(confidence, "confidence", index)

    category = registry.resolve(source_class)
    display = source_class if category == UNKNOWN else category
    if confidence is None:
        label = display
    else:
        label = f"{display} ({round_half_up(confidence * 100)}%)"

    return PlanElement(
        id=f"pred-{index}",
        category=category,
        label=label,
        box=_detected_box(prediction, index, width, height),
        provenance="detected",
        source_class=source_class,
        confidence=confidence,
    )


def _usable_dimension(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value) and value > 0


def normalize_detections(
    raw: Any,
    image_width: float,
    image_height: float,
    registry: CategoryRegistry = default_registry,
) -> NormalizationResult:
    predictions = _predictions(raw)

    width_ok = _usable_dimension(image_width)
    height_ok = _usable_dimension(image_height)
    degraded = not (width_ok and height_ok)
    safe_width = image_width if width_ok else CANONICAL_SCALE
    safe_height = image_height if height_ok else CANONICAL_SCALE
    if degraded:
        logger.warning(
            "Image dimensions unknown (%sx%s); scaling %d detections against %d",
            image_width, image_height, len(predictions), CANONICAL_SCALE,
        )

    elements = [
        _to_element(prediction, index, safe_width, safe_height, registry)
        for index, prediction in enumerate(predictions)
    ]
    return NormalizationResult(
        elements=elements,
        image_width=int(image_width) if width_ok else 0,
        image_height=int(image_height) if height_ok else 0,
        degraded=degraded,
    )


def normalize(
    raw: Any,
    image_width: float,
    image_height: float,
    registry: CategoryRegistry = default_registry,
) -> List[PlanElement]:
    return normalize_detections(raw, image_width, image_height, registry).elements


async def normalize_payload(
    raw: Any,
    source_image_bytes: Optional[bytes] = None,
    registry: CategoryRegistry = default_registry,
) -> NormalizationResult:
    """Resolve the image dimensions (decoding the source if needed), then normalize."""
    _predictions(raw)
    width, height = payload_dimensions(raw)
    if width == 0 or height == 0:
        width, height = await asyncio.to_thread(image_dimensions, source_image_bytes)
    return normalize_detections(raw, width, height, registry)
