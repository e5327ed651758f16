"""
In-memory overlay model for one analyzed floor plan.

Holds the canonical elements, per-category visibility and the active edit tool.
Every operation is forgiving: bad input is clamped or ignored and nothing here
raises. Edits only take effect while their tool is active, and only
categories flagged addable can be drawn.
"""
import enum
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from floorplan_ai.categories import UNKNOWN, UNKNOWN_COLOR, CategoryRegistry, default_registry
from floorplan_ai.config import MIN_MANUAL_BOX
from floorplan_ai.geometry import Point, bounding_box, box_contains, box_size
from floorplan_ai.models import PlanElement

logger = logging.getLogger(__name__)


class OverlayPhase(str, enum.Enum):
    EMPTY = "empty"
    POPULATED = "populated"
    EDITING_ADD = "editing_add"
    EDITING_REMOVE = "editing_remove"


class EditTool(str, enum.Enum):
    NONE = "none"
    ADD = "add"
    REMOVE = "remove"


@dataclass
class OverlayConfig:
    colors: Dict[str, str]
    default_visibility: Dict[str, bool]
    addable: List[str] = field(default_factory=list)
    min_box: int = MIN_MANUAL_BOX

    @classmethod
    def from_registry(cls, registry: CategoryRegistry = default_registry,
                      min_box: int = MIN_MANUAL_BOX) -> "OverlayConfig":
        names = registry.names
        return cls(
            colors={name: registry.color(name) for name in names},
            default_visibility={name: registry.get(name).default_visible for name in names},
            addable=registry.addable,
            min_box=min_box,
        )

    @property
    def categories(self) -> List[str]:
        return list(self.colors)


@dataclass
class LegendRow:
    category: str
    color: str
    count: int
    visible: bool


class OverlayModel:
    def __init__(self, config: Optional[OverlayConfig] = None) -> None:
        self.config = config or OverlayConfig.from_registry()
        self._elements: List[PlanElement] = []
        self._visibility: Dict[str, bool] = {}
        self._tool = EditTool.NONE
        self._add_category = self._first_addable()
        self._manual_counter = 0
        self._loaded = False

    def _first_addable(self) -> str:
        if self.config.addable:
            return self.config.addable[0]
        categories = self.config.categories
        return categories[0] if categories else UNKNOWN

    # -- lifecycle ---------------------------------------------------------

    def load(self, elements: Iterable[PlanElement]) -> None:
        """Start a fresh state for a newly analyzed image."""
        self._elements = list(elements)
        self._visibility = dict(self.config.default_visibility)
        if any(self.layer_of(element.category) == UNKNOWN for element in self._elements):
            self._visibility.setdefault(UNKNOWN, True)
        self._tool = EditTool.NONE
        self._add_category = self._first_addable()
        self._manual_counter = 0
        self._loaded = True

    def reset(self) -> None:
        self._elements = []
        self._visibility = {}
        self._tool = EditTool.NONE
        self._manual_counter = 0
        self._loaded = False

    @property
    def phase(self) -> OverlayPhase:
        if not self._loaded:
            return OverlayPhase.EMPTY
        if self._tool is EditTool.ADD:
            return OverlayPhase.EDITING_ADD
        if self._tool is EditTool.REMOVE:
            return OverlayPhase.EDITING_REMOVE
        return OverlayPhase.POPULATED

    @property
    def elements(self) -> List[PlanElement]:
        return list(self._elements)

    @property
    def visibility(self) -> Dict[str, bool]:
        return dict(self._visibility)

    @property
    def tool(self) -> EditTool:
        return self._tool

    @property
    def add_category(self) -> str:
        return self._add_category

    # -- visibility --------------------------------------------------------

    def layer_of(self, category: str) -> str:
        """Layer a category is counted and toggled under."""
        return category if category in self.config.colors else UNKNOWN

    def is_visible(self, category: str) -> bool:
        return self._visibility.get(self.layer_of(category), True)

    def is_addable(self, category: Optional[str]) -> bool:
        return category in self.config.addable

    def toggle_visibility(self, category: str) -> bool:
        layer = self.layer_of(category)
        self._visibility[layer] = not self.is_visible(layer)
        return self._visibility[layer]

    # -- edit tools --------------------------------------------------------

    def begin_add(self, category: Optional[str] = None) -> EditTool:
        if not self._loaded or not self.is_addable(category or self._add_category):
            return self._tool
        if self._tool is EditTool.ADD and (category is None or category == self._add_category):
            self._tool = EditTool.NONE
            return self._tool
        if category:
            self._add_category = category
        self._tool = EditTool.ADD
        return self._tool

    def begin_remove(self) -> EditTool:
        if not self._loaded:
            return self._tool
        self._tool = EditTool.NONE if self._tool is EditTool.REMOVE else EditTool.REMOVE
        return self._tool

    def end_edit(self) -> None:
        self._tool = EditTool.NONE

    def commit_add(self, start: Point, end: Point, category: Optional[str] = None) -> Optional[PlanElement]:
        """
        Append a manual element spanning two (y, x) drag corners.

        Only acts while the add tool is active. Returns the new element, or None
        when the category cannot be added or the clamped rectangle is smaller
        than the minimum size on either axis.
        """
        if self._tool is not EditTool.ADD:
            return None
        category = category or self._add_category
        if not self.is_addable(category):
            logger.debug("Ignoring add for non-addable category %r", category)
            return None
        box = bounding_box(start, end)
        height, width = box_size(box)
        if height < self.config.min_box or width < self.config.min_box:
            logger.debug("Ignoring %dx%d drag below minimum size", width, height)
            return None

        self._manual_counter += 1
        element = PlanElement(
            id=f"manual-{self._manual_counter}",
            category=category,
            label=f"{category} (Manual)",
            box=box,
            provenance="manual",
        )
        self._elements.append(element)
        return element

    def remove_element(self, element_id: str) -> Optional[PlanElement]:
        """Delete by id while the remove tool is active; anything else is ignored."""
        if self._tool is not EditTool.REMOVE:
            return None
        for index, element in enumerate(self._elements):
            if element.id == element_id:
                return self._elements.pop(index)
        logger.debug("Remove ignored for unknown element id %r", element_id)
        return None

    def element_at(self, point: Point) -> Optional[PlanElement]:
        """Topmost visible element under a canonical (y, x) point."""
        for element in reversed(self._elements):
            if self.is_visible(element.category) and box_contains(element.box, point):
                return element
        return None

    def remove_at(self, point: Point) -> Optional[PlanElement]:
        if self._tool is not EditTool.REMOVE:
            return None
        element = self.element_at(point)
        if element is None:
            return None
        return self.remove_element(element.id)

    # -- derived views -----------------------------------------------------

    def summary(self) -> Dict[str, int]:
        counts = {name: 0 for name in self.config.categories}
        for element in self._elements:
            key = self.layer_of(element.category)
            counts[key] = counts.get(key, 0) + 1
        return counts

    def legend(self) -> List[LegendRow]:
        """
        Summary rows for the side panel. A category is hidden only when it has
        no elements and its layer is switched off.
        """
        rows = []
        for category, count in self.summary().items():
            visible = self.is_visible(category)
            if count == 0 and not visible:
                continue
            rows.append(LegendRow(
                category=category,
                color=self.color_for(category),
                count=count,
                visible=visible,
            ))
        return rows

    def visible_elements(self) -> List[PlanElement]:
        return [element for element in self._elements if self.is_visible(element.category)]

    def color_for(self, category: str) -> str:
        return self.config.colors.get(category, UNKNOWN_COLOR)

    def render_boxes(self) -> List[Dict[str, object]]:
        """Draw list for the viewer, in z-order, skipping hidden layers."""
        return [
            {
                "id": element.id,
                "category": element.category,
                "label": element.label,
                "color": self.color_for(element.category),
                "style": element.style,
            }
            for element in self.visible_elements()
        ]
