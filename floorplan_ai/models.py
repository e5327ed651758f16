from typing import Dict, Literal, Optional, Tuple

from pydantic import BaseModel, field_validator

from floorplan_ai.geometry import box_to_style, clamp_box

Provenance = Literal["detected", "manual"]


class PlanElement(BaseModel):
    id: str
    category: str
    label: str
    box: Tuple[int, int, int, int]  # ymin, xmin, ymax, xmax on the 0-1000 grid
    provenance: Provenance = "detected"
    source_class: Optional[str] = None
    confidence: Optional[float] = None

    @field_validator("box", mode="before")
    @classmethod
    def _clamp_box(cls, value):
        ymin, xmin, ymax, xmax = value
        return clamp_box(float(ymin), float(xmin), float(ymax), float(xmax))

    @property
    def is_manual(self) -> bool:
        return self.provenance == "manual"

    @property
    def style(self) -> Dict[str, str]:
        return box_to_style(self.box)
