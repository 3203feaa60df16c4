"""Layout types shared by the layered delegate and the layout engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class LayoutDirection(str, Enum):
    """Direction dependency edges flow in the finished diagram."""

    DOWN = "DOWN"
    RIGHT = "RIGHT"
    UP = "UP"
    LEFT = "LEFT"

    @property
    def is_horizontal(self) -> bool:
        return self in (LayoutDirection.RIGHT, LayoutDirection.LEFT)


class LayoutAlgorithm(str, Enum):
    LAYERED = "layered"
    FORCE = "force"


@dataclass(frozen=True)
class AutoLayoutOptions:
    """Spacing and algorithm settings for one layout request. Never mutated; use ``dataclasses.replace``."""

    direction: LayoutDirection = LayoutDirection.DOWN
    node_spacing: float = 50
    level_spacing: float = 80
    edge_spacing: float = 20
    algorithm: LayoutAlgorithm = LayoutAlgorithm.LAYERED
    component_spacing: float = 80
    aspect_ratio: float = 1.0


DEFAULT_LAYOUT_OPTIONS = AutoLayoutOptions()


@dataclass(frozen=True)
class Padding:
    top: float = 0
    left: float = 0
    bottom: float = 0
    right: float = 0


NO_PADDING = Padding()


@dataclass
class LayoutBox:
    """A fixed-size node handed to the delegate, optionally nesting child boxes.

    ``x``/``y`` are filled in by the delegate, relative to the enclosing box's
    top-left corner (or the root frame for top-level boxes). A box with
    children may grow to fit them; ``width``/``height`` then reflect the grown size.
    """

    id: str
    width: float
    height: float
    children: list[LayoutBox] = field(default_factory=list)
    padding: Padding = NO_PADDING
    x: float | None = None
    y: float | None = None


@dataclass(frozen=True)
class LayoutEdge:
    id: str
    source: str
    target: str


@dataclass
class LayoutGraph:
    """Root of the structure handed to the delegate."""

    children: list[LayoutBox] = field(default_factory=list)
    edges: list[LayoutEdge] = field(default_factory=list)
    options: AutoLayoutOptions = DEFAULT_LAYOUT_OPTIONS


# Prefix constants
DUMMY_PREFIX = "__dummy_"
ROOT_ID = "__root__"
