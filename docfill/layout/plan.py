"""Placement plan data model shared by the layout resolver and fill engine."""

from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import StrEnum

from docfill.extraction.parser import Scalar


class NativeKind(StrEnum):
    """Kinds of interactive fields the fill engine can write."""

    TEXT = "text"
    CHECKBOX = "checkbox"
    CHOICE = "choice"


class PlanMode(StrEnum):
    """Layout mode that produced a plan."""

    NATIVE = "native"
    COORDINATE = "coordinate"


class LayoutSource(StrEnum):
    """Origin of coordinate placements."""

    ORACLE = "oracle"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class NativeField:
    """An interactive field already present in the target's form.

    Attributes:
        name: Fully qualified field name.
        kind: Fill strategy for the field.
        page: 1-based page of the field's first widget.
        label: Visible alternate name, if the form defines one.
        options: Selectable export values for choice fields.
    """

    name: str
    kind: NativeKind
    page: int = 1
    label: str | None = None
    options: tuple[str, ...] = ()

    @property
    def target(self) -> str:
        """Name used in outcome logs."""
        return self.name


@dataclass(frozen=True)
class CoordinateField:
    """A synthesized text placement at an absolute page position.

    ``y`` is measured from the bottom edge of the page. When ``label`` is
    set the engine writes ``"<label>: <value>"``.
    """

    key: str
    page: int
    x: float
    y: float
    font_size: float | None = None
    max_width: float | None = None
    label: str | None = None

    @property
    def target(self) -> str:
        """Position label such as ``p1@(50,742)`` used in outcome logs."""
        return f"p{self.page}@({self.x:g},{self.y:g})"


TargetFieldDescriptor = NativeField | CoordinateField


@dataclass(frozen=True)
class Placement:
    """One value to write at one target location."""

    descriptor: TargetFieldDescriptor
    key: str
    value: Scalar


@dataclass
class PlacementPlan:
    """Ordered placements for one fill run."""

    mode: PlanMode
    placements: list[Placement] = field(default_factory=list)
    source: LayoutSource | None = None

    def __len__(self) -> int:
        return len(self.placements)

    def __iter__(self) -> Iterator[Placement]:
        """Iterate placements in application order."""
        return iter(self.placements)

    @property
    def keys(self) -> list[str]:
        """Field-map keys in placement order."""
        return [p.key for p in self.placements]
