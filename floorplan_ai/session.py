import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from floorplan_ai.categories import CategoryRegistry, default_registry
from floorplan_ai.errors import FloorPlanError, NoFileProvided, ServiceCallFailed
from floorplan_ai.models import PlanElement
from floorplan_ai.normalizer import normalize_payload
from floorplan_ai.overlay import OverlayModel

logger = logging.getLogger(__name__)


def user_message(exc: FloorPlanError) -> str:
    message = str(exc)
    if isinstance(exc, ServiceCallFailed) and exc.details:
        return f"{message}: {exc.details}"
    return message


@dataclass
class AnalysisOutcome:
    elements: List[PlanElement] = field(default_factory=list)
    summary: Dict[str, int] = field(default_factory=dict)
    degraded: bool = False
    stale: bool = False
    failure: Optional[FloorPlanError] = None

    @property
    def ok(self) -> bool:
        return self.failure is None and not self.stale

    @property
    def error(self) -> Optional[str]:
        return user_message(self.failure) if self.failure else None


class AnalysisSession:
    """
    One user's analysis flow: upload, detect, normalize, seed the overlay.

    Only the most recent analysis may touch the overlay. Starting a new one, or
    calling ``reset``, turns the result of any analysis still in flight into a
    stale outcome that is dropped.
    """

    def __init__(
        self,
        client,
        overlay: Optional[OverlayModel] = None,
        registry: CategoryRegistry = default_registry,
    ) -> None:
        self.client = client
        self.overlay = overlay or OverlayModel()
        self.registry = registry
        self.image_bytes: Optional[bytes] = None
        self.processing = False
        self.degraded = False
        self.last_error: Optional[str] = None
        self._generation = 0

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    async def analyze(self, image_bytes: Optional[bytes]) -> AnalysisOutcome:
        self._generation += 1
        generation = self._generation
        self.overlay.reset()
        self.degraded = False
        self.last_error = None

        try:
            if not image_bytes:
                raise NoFileProvided()
            self.image_bytes = image_bytes
            self.processing = True

            payload = await asyncio.to_thread(self.client.detect, image_bytes)
            if not self._is_current(generation):
                logger.info("Discarding detections from superseded analysis %d", generation)
                return AnalysisOutcome(stale=True)

            result = await normalize_payload(payload, image_bytes, self.registry)
            if not self._is_current(generation):
                logger.info("Discarding normalized result from superseded analysis %d", generation)
                return AnalysisOutcome(stale=True)
        except FloorPlanError as exc:
            if not self._is_current(generation):
                return AnalysisOutcome(stale=True)
            logger.warning("Analysis failed: %s", user_message(exc))
            self.overlay.reset()
            self.image_bytes = None
            self.last_error = user_message(exc)
            return AnalysisOutcome(failure=exc)
        finally:
            if self._is_current(generation):
                self.processing = False

        self.overlay.load(result.elements)
        self.degraded = result.degraded
        return AnalysisOutcome(
            elements=self.overlay.elements,
            summary=self.overlay.summary(),
            degraded=result.degraded,
        )

    def reset(self) -> None:
        """Start over: forget the image and any analysis still running."""
        self._generation += 1
        self.overlay.reset()
        self.image_bytes = None
        self.processing = False
        self.degraded = False
        self.last_error = None
