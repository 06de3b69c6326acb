"""Two-mode layout resolution.

Native mode writes into the target's own form fields. Coordinate mode is
entered when the target has no native fields or none of them match a key;
its placements come from the layout oracle, and any oracle failure demotes
to a deterministic top-to-bottom layout on page 1.
"""

from pydantic import BaseModel, Field, ValidationError

from docfill.errors import InvalidFieldMap, LayoutUnavailable
from docfill.extraction.oracle import (
    MessagesOracle,
    document_block,
    first_text,
    text_block,
)
from docfill.extraction.parser import FieldMap, load_json_object
from docfill.utils.config import LayoutConfig
from docfill.utils.logger import get_logger

from .matcher import FieldMatcher
from .plan import (
    CoordinateField,
    LayoutSource,
    Placement,
    PlacementPlan,
    PlanMode,
)
from .target import TargetDocument

logger = get_logger(__name__)


class OraclePlacement(BaseModel):
    """One entry of the layout oracle's ``fields`` list."""

    key: str = Field(min_length=1)
    page: int = Field(ge=1)
    x: float
    y: float
    font_size: float | None = Field(default=None, gt=0)
    max_width: float | None = Field(default=None, gt=0)


class OracleLayout(BaseModel):
    """Layout oracle answer."""

    fields: list[OraclePlacement] = Field(min_length=1)


def fallback_layout(
    field_map: FieldMap, page_height: float, config: LayoutConfig
) -> list[Placement]:
    """Place every key on page 1, one labelled line per key.

    Lines start ``top_margin`` below the top edge at ``left_margin`` and move
    down by ``line_height`` in map order. Lines that end up below the
    bottom margin are left in the plan for the fill engine to skip.

    Args:
        field_map: Values to place.
        page_height: Height of page 1 in points.
        config: Layout configuration.

    Returns:
        One placement per key.
    """
    y = page_height - config.top_margin
    placements: list[Placement] = []
    for key, value in field_map.items():
        descriptor = CoordinateField(
            key=key,
            page=1,
            x=config.left_margin,
            y=y,
            font_size=config.font_size,
            label=key,
        )
        placements.append(Placement(descriptor=descriptor, key=key, value=value))
        y -= config.line_height
    return placements


class LayoutResolver:
    """Decides where each field-map value is written on the target.

    Args:
        config: Layout configuration.
        oracle: Layout oracle client. Without one, coordinate mode always
            uses the fallback layout.
    """

    def __init__(self, config: LayoutConfig, oracle: MessagesOracle | None = None) -> None:
        self.config = config
        self.oracle = oracle if config.use_oracle else None
        self.matcher = FieldMatcher(config.match_threshold)

    async def resolve(self, target: TargetDocument, field_map: FieldMap) -> PlacementPlan:
        """Build the placement plan for one run.

        Args:
            target: Opened target document, used read-only.
            field_map: Validated field map.

        Returns:
            Native plan if at least one native field matched, otherwise a
            coordinate plan.
        """
        native = self.resolve_native(target, field_map)
        if native.placements:
            return native

        logger.info("No native field matched, switching to coordinate layout")
        try:
            placements = await self.request_layout(target, field_map)
        except LayoutUnavailable as exc:
            logger.warning("Layout oracle unavailable, using fallback layout: %s", exc)
            _, height = target.page_size(1)
            return PlacementPlan(
                mode=PlanMode.COORDINATE,
                placements=fallback_layout(field_map, height, self.config),
                source=LayoutSource.FALLBACK,
            )
        return PlacementPlan(
            mode=PlanMode.COORDINATE, placements=placements, source=LayoutSource.ORACLE
        )

    def resolve_native(self, target: TargetDocument, field_map: FieldMap) -> PlacementPlan:
        """Map native fields to keys; unmatched fields and keys are dropped."""
        fields = target.native_fields()
        plan = PlacementPlan(mode=PlanMode.NATIVE)
        if not fields:
            return plan

        for match in self.matcher.match(fields, list(field_map)):
            plan.placements.append(
                Placement(descriptor=match.field, key=match.key, value=field_map[match.key])
            )

        unused = set(field_map) - set(plan.keys)
        if plan.placements and unused:
            logger.info("Dropping %d keys without a native field: %s", len(unused), sorted(unused))
        return plan

    async def request_layout(
        self, target: TargetDocument, field_map: FieldMap
    ) -> list[Placement]:
        """Ask the layout oracle for coordinates and validate its answer.

        Args:
            target: Opened target document.
            field_map: Values to place.

        Returns:
            Validated placements for keys of the field map.

        Raises:
            LayoutUnavailable: If there is no oracle, the call fails or
                times out, or the answer does not validate.
        """
        if self.oracle is None:
            raise LayoutUnavailable("No layout oracle configured")

        content = [
            document_block(target.to_bytes()),
            text_block(f"{self.config.prompt}\n\nField map:\n{field_map.to_json()}"),
        ]
        try:
            blocks = await self.oracle.ask(content)
        except Exception as exc:
            raise LayoutUnavailable(
                f"Layout oracle call failed: {exc or type(exc).__name__}"
            ) from exc

        raw_text = first_text(blocks)
        if raw_text is None:
            raise LayoutUnavailable("Layout oracle returned no text content")

        try:
            layout = OracleLayout.model_validate(load_json_object(raw_text, "layout"))
        except (InvalidFieldMap, ValidationError) as exc:
            raise LayoutUnavailable(f"Invalid layout answer: {exc}") from exc

        placements: list[Placement] = []
        seen: set[str] = set()
        for entry in layout.fields:
            if entry.key not in field_map or entry.key in seen:
                logger.debug("Ignoring layout entry for key '%s'", entry.key)
                continue
            if entry.page > target.page_count:
                logger.debug("Ignoring layout entry on missing page %d", entry.page)
                continue
            seen.add(entry.key)
            descriptor = CoordinateField(
                key=entry.key,
                page=entry.page,
                x=entry.x,
                y=entry.y,
                font_size=entry.font_size,
                max_width=entry.max_width,
            )
            placements.append(
                Placement(descriptor=descriptor, key=entry.key, value=field_map[entry.key])
            )

        if not placements:
            raise LayoutUnavailable("Layout answer placed none of the field-map keys")

        logger.info("Layout oracle placed %d of %d keys", len(placements), len(field_map))
        return placements
