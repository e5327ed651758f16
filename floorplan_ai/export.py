import base64
from typing import Optional, Tuple

import cv2
import numpy as np

from floorplan_ai.config import EXPORT_LINE_THICKNESS, OVERLAY_ALPHA
from floorplan_ai.errors import MalformedImage
from floorplan_ai.geometry import box_to_pixels
from floorplan_ai.overlay import OverlayModel


def hex_to_bgr(color: str) -> Tuple[int, int, int]:
    value = color.lstrip("#")
    if len(value) == 3:
        value = "".join(ch * 2 for ch in value)
    try:
        r, g, b = int(value[0:2], 16), int(value[2:4], 16), int(value[4:6], 16)
    except ValueError:
        return (0, 0, 0)
    return (b, g, r)


def decode_image(image_bytes: bytes) -> np.ndarray:
    nparr = np.frombuffer(image_bytes or b"", np.uint8)
    image = cv2.imdecode(nparr, cv2.IMREAD_COLOR) if nparr.size else None
    if image is None:
        raise MalformedImage()
    return image


def _encode_png(image: np.ndarray) -> bytes:
    ok, buffer = cv2.imencode(".png", image)
    if not ok:
        raise MalformedImage("Could not encode snapshot")
    return buffer.tobytes()


def draw_overlay(image_bgr: np.ndarray, overlay: OverlayModel,
                 alpha: float = OVERLAY_ALPHA) -> np.ndarray:
    """Blend the visible overlay boxes onto a copy of the source image."""
    height, width = image_bgr.shape[:2]
    layer = image_bgr.copy()
    thickness = max(1, EXPORT_LINE_THICKNESS)
    font_scale = max(0.35, min(width, height) / 1600)

    for element in overlay.visible_elements():
        color = hex_to_bgr(overlay.color_for(element.category))
        x1, y1, x2, y2 = box_to_pixels(element.box, width, height)
        cv2.rectangle(layer, (x1, y1), (x2, y2), color, thickness, cv2.LINE_AA)
        text_y = y1 - 4 if y1 > 12 else y1 + 14
        cv2.putText(layer, element.category, (x1 + 2, text_y), cv2.FONT_HERSHEY_SIMPLEX,
                    font_scale, color, 1, cv2.LINE_AA)

    return cv2.addWeighted(image_bgr, 1.0 - alpha, layer, alpha, 0)


def render_snapshot(image_bytes: bytes, overlay: OverlayModel,
                    alpha: Optional[float] = None) -> bytes:
    image = decode_image(image_bytes)
    rendered = draw_overlay(image, overlay, OVERLAY_ALPHA if alpha is None else alpha)
    return _encode_png(rendered)


def snapshot_data_url(image_bytes: bytes, overlay: OverlayModel) -> str:
    b64 = base64.b64encode(render_snapshot(image_bytes, overlay)).decode("utf-8")
    return f"data:image/png;base64,{b64}"
