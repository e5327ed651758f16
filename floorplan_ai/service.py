import base64
import logging
from typing import Any, Dict, Optional

import requests

from floorplan_ai import config
from floorplan_ai.errors import (
    MalformedDetectionResult,
    ServiceAccessDenied,
    ServiceAuthError,
    ServiceCallFailed,
    ServiceConfigurationError,
)

logger = logging.getLogger(__name__)


class DetectionServiceClient:
    """
    Client for the hosted floor-plan detection model.

    The image is posted as a base64 body; the API key and the confidence
    threshold (as a percentage) travel in the query string. Thresholding
    happens on the service side only.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model_id: str = config.ROBOFLOW_MODEL_ID,
        version: str = config.ROBOFLOW_MODEL_VERSION,
        confidence: float = config.DETECTION_CONFIDENCE,
        api_url: str = config.ROBOFLOW_API_URL,
        timeout: float = config.DETECTION_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else config.roboflow_api_key()
        self.model_id = model_id
        self.version = version
        self.confidence = confidence
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    @property
    def endpoint(self) -> str:
        return f"{self.api_url}/{self.model_id}/{self.version}"

    def detect(self, image_bytes: bytes) -> Dict[str, Any]:
        if not self.api_key:
            raise ServiceConfigurationError()

        body = base64.b64encode(image_bytes).decode("utf-8")
        params = {
            "api_key": self.api_key,
            "confidence": int(round(self.confidence * 100)),
        }
        try:
            response = self.session.post(
                self.endpoint,
                params=params,
                data=body,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.warning("Detection request to %s failed: %s", self.endpoint, exc)
            raise ServiceCallFailed(details=str(exc)) from exc

        if response.status_code == 401:
            raise ServiceAuthError(details=response.text)
        if response.status_code == 403:
            raise ServiceAccessDenied(details=response.text)
        if not response.ok:
            logger.warning("Detection service error %s: %s", response.status_code, response.text)
            raise ServiceCallFailed(
                f"Detection service call failed with HTTP {response.status_code}",
                details=response.text,
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise MalformedDetectionResult(details="response body is not JSON") from exc
        if not isinstance(payload, dict):
            raise MalformedDetectionResult(details="response body is not a JSON object")

        logger.info("Detection service returned %d predictions", len(payload.get("predictions") or []))
        return payload
