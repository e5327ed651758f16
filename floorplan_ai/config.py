import os


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_str(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip()


# Canonical coordinate space shared by every stored box
CANONICAL_SCALE = 1000

# Manual boxes below this size (canonical units, either axis) are rejected
MIN_MANUAL_BOX = _env_int("MIN_MANUAL_BOX", 10)

# Hosted detection service
ROBOFLOW_API_URL = _env_str("ROBOFLOW_API_URL", "https://detect.roboflow.com")
ROBOFLOW_MODEL_ID = _env_str("ROBOFLOW_MODEL_ID", "floorplans-r7e9l-vjwg9")
ROBOFLOW_MODEL_VERSION = _env_str("ROBOFLOW_MODEL_VERSION", "2")
DETECTION_CONFIDENCE = _env_float("DETECTION_CONFIDENCE", 0.4)
DETECTION_TIMEOUT_SECONDS = _env_float("DETECTION_TIMEOUT_SECONDS", 30.0)


def roboflow_api_key() -> str:
    return os.getenv("ROBOFLOW_API_KEY", "").strip()


# Snapshot export
OVERLAY_ALPHA = _env_float("OVERLAY_ALPHA", 0.6)
EXPORT_LINE_THICKNESS = _env_int("EXPORT_LINE_THICKNESS", 2)
