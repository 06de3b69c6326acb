"""Fill engine applying a placement plan onto a target PDF.

Native placements write into form widgets (text, checkbox, choice).
Coordinate placements draw text at absolute positions. Every placement is
applied in isolation: a failure is recorded in the outcome log and the
remaining placements still run.

Coordinate policies:
    * ``max_width`` clips: the longest prefix that fits is drawn followed by
      the configured clip suffix. Text is also clipped at the right page edge.
    * Overflow: once a placement's ``y`` falls below the bottom margin, it
      and every later placement on the same page are skipped. Nothing is
      moved to another page.
"""

import re
from dataclasses import dataclass, field
from enum import StrEnum

import fitz

from docfill.errors import FieldApplyFailure
from docfill.extraction.parser import FieldMap, Scalar, value_to_text
from docfill.layout.plan import (
    CoordinateField,
    LayoutSource,
    NativeField,
    NativeKind,
    Placement,
    PlacementPlan,
    PlanMode,
)
from docfill.layout.resolver import fallback_layout
from docfill.layout.target import TargetDocument, choice_options
from docfill.utils.config import FillConfig, LayoutConfig
from docfill.utils.logger import get_logger

logger = get_logger(__name__)

TRUTHY_TOKENS = frozenset({"yes", "true", "y", "1", "checked"})

_CUSTOM_FONT_NAME = "dffont"
_LINE_BREAKS = re.compile(r"\s*[\r\n]+\s*")


class OutcomeStatus(StrEnum):
    """Per-placement outcome."""

    APPLIED = "applied"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class FieldOutcome:
    """Outcome of applying one placement."""

    key: str
    target: str
    status: OutcomeStatus
    reason: str | None = None


@dataclass
class FillResult:
    """Completed document and per-placement outcome log."""

    document: bytes
    outcomes: list[FieldOutcome] = field(default_factory=list)

    def with_status(self, status: OutcomeStatus) -> list[FieldOutcome]:
        return [o for o in self.outcomes if o.status is status]

    @property
    def applied(self) -> list[FieldOutcome]:
        return self.with_status(OutcomeStatus.APPLIED)

    @property
    def skipped(self) -> list[FieldOutcome]:
        return self.with_status(OutcomeStatus.SKIPPED)

    @property
    def failed(self) -> list[FieldOutcome]:
        return self.with_status(OutcomeStatus.FAILED)

    def summary(self) -> dict[str, int]:
        """Count outcomes per status."""
        return {status.value: len(self.with_status(status)) for status in OutcomeStatus}


def is_truthy(value: Scalar) -> bool:
    """Normalize a value to a checkbox state."""
    return value_to_text(value).strip().lower() in TRUTHY_TOKENS


def match_option(text: str, options: tuple[str, ...] | list[str]) -> str | None:
    """Find the option equal to ``text``, exactly first, then ignoring case."""
    if text in options:
        return text
    folded = text.strip().casefold()
    for option in options:
        if option.strip().casefold() == folded:
            return option
    return None


class FillEngine:
    """Writes placement plans onto target documents.

    Args:
        config: Fill configuration (font, margins, clipping).
        layout: Layout configuration used by :meth:`fill_fields`.
    """

    def __init__(self, config: FillConfig, layout: LayoutConfig | None = None) -> None:
        self.config = config
        self.layout = layout or LayoutConfig()
        if config.font_file:
            self.font = fitz.Font(fontfile=config.font_file)
            self._fontname = _CUSTOM_FONT_NAME
        else:
            self.font = fitz.Font(fontname=config.font_name)
            self._fontname = config.font_name

    def fill(self, target: bytes, plan: PlacementPlan) -> FillResult:
        """Apply a placement plan to target PDF bytes.

        Args:
            target: Target document bytes.
            plan: Placements to apply, in order.

        Returns:
            Filled document bytes and outcome log.

        Raises:
            TargetLoadFailure: If the target cannot be opened.
        """
        with TargetDocument.load(target) as doc:
            return self._run(doc, plan)

    def fill_fields(self, target: bytes, field_map: FieldMap) -> FillResult:
        """Overlay a raw field map using the deterministic fallback layout.

        Args:
            target: Target document bytes.
            field_map: Values to write.

        Returns:
            Filled document bytes and outcome log.
        """
        with TargetDocument.load(target) as doc:
            _, height = doc.page_size(1)
            plan = PlacementPlan(
                mode=PlanMode.COORDINATE,
                placements=fallback_layout(field_map, height, self.layout),
                source=LayoutSource.FALLBACK,
            )
            return self._run(doc, plan)

    def _run(self, doc: TargetDocument, plan: PlacementPlan) -> FillResult:
        outcomes = self.apply(doc, plan)
        result = FillResult(document=doc.to_bytes(), outcomes=outcomes)
        logger.info("Fill finished (%s mode): %s", plan.mode.value, result.summary())
        return result

    def apply(self, doc: TargetDocument, plan: PlacementPlan) -> list[FieldOutcome]:
        """Apply every placement to an open document, isolating failures.

        Args:
            doc: Target document, modified in place.
            plan: Placements to apply.

        Returns:
            One outcome per placement, in plan order.
        """
        outcomes: list[FieldOutcome] = []
        overflowed: set[int] = set()

        for placement in plan:
            descriptor = placement.descriptor
            try:
                if isinstance(descriptor, CoordinateField):
                    status, reason = self._draw(doc, placement, descriptor, overflowed)
                else:
                    status, reason = self._set_native(doc, placement, descriptor)
            except Exception as exc:
                logger.warning(
                    "Failed to apply '%s' to %s: %s", placement.key, descriptor.target, exc
                )
                status, reason = OutcomeStatus.FAILED, str(exc)

            logger.debug("%s -> %s: %s", placement.key, descriptor.target, status.value)
            outcomes.append(
                FieldOutcome(
                    key=placement.key,
                    target=descriptor.target,
                    status=status,
                    reason=reason,
                )
            )
        return outcomes

    def _set_native(
        self, doc: TargetDocument, placement: Placement, field: NativeField
    ) -> tuple[OutcomeStatus, str | None]:
        # Widgets only stay writable while their page object is alive.
        pages = []
        widgets: list[fitz.Widget] = []
        for page in doc.doc:
            hits = [w for w in page.widgets() if w.field_name == field.name]
            if hits:
                pages.append(page)
                widgets.extend(hits)
        if not widgets:
            raise FieldApplyFailure(f"Native field '{field.name}' not found in target")

        text = value_to_text(placement.value)

        if field.kind is NativeKind.TEXT:
            for widget in widgets:
                widget.field_value = text
                widget.update()

        elif field.kind is NativeKind.CHECKBOX:
            checked = is_truthy(placement.value)
            for widget in widgets:
                widget.field_value = widget.on_state() if checked else "Off"
                widget.update()

        else:
            options = list(field.options)
            if not options:
                for widget in widgets:
                    options.extend(o for o in choice_options(widget) if o not in options)
            option = match_option(text, options)
            if option is None:
                return OutcomeStatus.SKIPPED, f"no option matches '{text}'"
            for widget in widgets:
                if widget.field_type == fitz.PDF_WIDGET_TYPE_RADIOBUTTON:
                    state = widget.on_state()
                    widget.field_value = state if str(state) == option else "Off"
                else:
                    widget.field_value = option
                widget.update()

        return OutcomeStatus.APPLIED, None

    def _draw(
        self,
        doc: TargetDocument,
        placement: Placement,
        field: CoordinateField,
        overflowed: set[int],
    ) -> tuple[OutcomeStatus, str | None]:
        if not 1 <= field.page <= doc.page_count:
            raise FieldApplyFailure(f"Page {field.page} does not exist in target")
        if field.page in overflowed:
            return OutcomeStatus.SKIPPED, "page overflow"
        if field.y < self.config.bottom_margin:
            overflowed.add(field.page)
            return (
                OutcomeStatus.SKIPPED,
                f"below bottom margin ({field.y:g} < {self.config.bottom_margin:g})",
            )

        page = doc.doc[field.page - 1]
        width, height = page.rect.width, page.rect.height
        if field.y > height or not 0 <= field.x < width:
            return OutcomeStatus.SKIPPED, "outside page bounds"

        value = _LINE_BREAKS.sub(" ", value_to_text(placement.value))
        text = f"{field.label}: {value}" if field.label else value
        size = field.font_size or self.config.default_font_size

        limit = width - field.x
        if field.max_width is not None:
            limit = min(limit, field.max_width)
        drawn, clipped = self.clip(text, size, limit)
        if not drawn:
            return OutcomeStatus.SKIPPED, "no room to draw text"

        page.insert_text(
            fitz.Point(field.x, height - field.y),
            drawn,
            fontsize=size,
            fontname=self._fontname,
            fontfile=self.config.font_file,
        )
        return OutcomeStatus.APPLIED, f"clipped to {limit:g}pt" if clipped else None

    def clip(self, text: str, size: float, limit: float) -> tuple[str, bool]:
        """Fit text into ``limit`` points.

        Args:
            text: Text to draw.
            size: Font size in points.
            limit: Available width in points.

        Returns:
            The text to draw (empty if not even the suffix fits) and
            whether it was clipped.
        """
        if self.font.text_length(text, fontsize=size) <= limit:
            return text, False
        suffix = self.config.clip_suffix
        for end in range(len(text) - 1, -1, -1):
            candidate = text[:end].rstrip() + suffix
            if self.font.text_length(candidate, fontsize=size) <= limit:
                return candidate, True
        return "", True
