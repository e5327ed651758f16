"""
Single registry of plan element categories.

The normalizer, the overlay model and the snapshot exporter all read category
names, colors and defaults from here.
"""
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

UNKNOWN = "unknown"
UNKNOWN_COLOR = "#000000"


@dataclass(frozen=True)
class CategorySpec:
    name: str
    color: str
    default_visible: bool = True
    addable: bool = True


DEFAULT_CATEGORIES: Tuple[CategorySpec, ...] = (
    CategorySpec("perimeter", "#4a90e2"),
    CategorySpec("bathroom", "#e24a8d"),
    CategorySpec("window", "#50e3c2"),
    CategorySpec("door", "#f5a623"),
    CategorySpec("stairs", "#9b59b6"),
    CategorySpec("furniture", "#95a5a6", addable=False),
)

# External class name (after _canonical_key) -> category
DEFAULT_ALIASES: Dict[str, str] = {
    "perimeter": "perimeter",
    "wall": "perimeter",
    "walls": "perimeter",
    "outer_wall": "perimeter",
    "exterior_wall": "perimeter",
    "bathroom": "bathroom",
    "bathrooms": "bathroom",
    "bath": "bathroom",
    "toilet": "bathroom",
    "wc": "bathroom",
    "restroom": "bathroom",
    "window": "window",
    "windows": "window",
    "door": "door",
    "doors": "door",
    "sliding_door": "door",
    "stairs": "stairs",
    "stair": "stairs",
    "staircase": "stairs",
    "stairway": "stairs",
    "furniture": "furniture",
}

_SEPARATORS = re.compile(r"[\s\-]+")


def _canonical_key(class_name: str) -> str:
    return _SEPARATORS.sub("_", class_name.strip().lower())


class CategoryRegistry:
    def __init__(
        self,
        categories: Tuple[CategorySpec, ...] = DEFAULT_CATEGORIES,
        aliases: Optional[Dict[str, str]] = None,
    ) -> None:
        self._specs: Dict[str, CategorySpec] = {spec.name: spec for spec in categories}
        alias_table = DEFAULT_ALIASES if aliases is None else aliases
        self._aliases = {
            _canonical_key(key): value
            for key, value in alias_table.items()
            if value in self._specs
        }
        for name in self._specs:
            self._aliases.setdefault(_canonical_key(name), name)

    @property
    def names(self) -> List[str]:
        return list(self._specs)

    @property
    def addable(self) -> List[str]:
        return [spec.name for spec in self._specs.values() if spec.addable]

    def __contains__(self, name: object) -> bool:
        return name in self._specs

    def get(self, name: str) -> Optional[CategorySpec]:
        return self._specs.get(name)

    def color(self, name: str) -> str:
        spec = self._specs.get(name)
        return spec.color if spec else UNKNOWN_COLOR

    def resolve(self, class_name: str) -> str:
        """Map an external detection class to a known category, or ``unknown``."""
        return self._aliases.get(_canonical_key(class_name), UNKNOWN)


default_registry = CategoryRegistry()
