"""Pipeline orchestrator: extraction, mapping, layout, fill.

Stages run strictly in order, each consuming only the previous stage's
output. The first failing stage ends the run with a single
``PipelineError`` naming the stage; nothing is retried.
"""

from dataclasses import dataclass

import anthropic

from docfill.errors import (
    ExtractionUnavailable,
    InvalidFieldMap,
    PipelineError,
    Stage,
    TargetLoadFailure,
)
from docfill.extraction.adapter import ExtractionAdapter
from docfill.extraction.oracle import MessagesOracle
from docfill.extraction.parser import FieldMap, MappingParser
from docfill.fill.engine import FillEngine, FillResult
from docfill.layout.plan import PlacementPlan
from docfill.layout.resolver import LayoutResolver
from docfill.layout.target import TargetDocument
from docfill.utils.config import AppConfig
from docfill.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class PipelineResult:
    """Outcome of a successful pipeline run."""

    field_map: FieldMap
    plan: PlacementPlan
    fill: FillResult

    @property
    def document(self) -> bytes:
        return self.fill.document


def _stage_error(stage: Stage, exc: Exception) -> PipelineError:
    logger.error("Pipeline failed at %s stage: %s", stage.value, exc)
    return PipelineError(stage, str(exc) or type(exc).__name__)


class FillPipeline:
    """Runs one source document through extraction and onto one target.

    Args:
        extractor: Extraction adapter.
        parser: Mapping parser.
        resolver: Layout resolver.
        engine: Fill engine.
    """

    def __init__(
        self,
        extractor: ExtractionAdapter,
        parser: MappingParser,
        resolver: LayoutResolver,
        engine: FillEngine,
    ) -> None:
        self.extractor = extractor
        self.parser = parser
        self.resolver = resolver
        self.engine = engine

    @classmethod
    def from_config(
        cls, config: AppConfig, client: anthropic.AsyncAnthropic
    ) -> "FillPipeline":
        """Build a pipeline whose oracles share one injected SDK client.

        Args:
            config: Application configuration.
            client: Oracle SDK client owned by the caller.

        Returns:
            A ready pipeline.
        """
        extraction_oracle = MessagesOracle(
            client,
            model=config.extraction.model,
            max_tokens=config.extraction.max_tokens,
            timeout_s=config.extraction.timeout_s,
        )
        layout_oracle = MessagesOracle(
            client,
            model=config.layout.model,
            max_tokens=config.layout.max_tokens,
            timeout_s=config.layout.timeout_s,
        )
        return cls(
            extractor=ExtractionAdapter(extraction_oracle, config.extraction),
            parser=MappingParser(),
            resolver=LayoutResolver(config.layout, layout_oracle),
            engine=FillEngine(config.fill, config.layout),
        )

    async def extract(self, source: bytes) -> FieldMap:
        """Run extraction and mapping only.

        Args:
            source: Source document bytes.

        Returns:
            The validated field map.

        Raises:
            PipelineError: If extraction or parsing fails.
        """
        try:
            raw_text = await self.extractor.extract(source)
        except ExtractionUnavailable as exc:
            raise _stage_error(Stage.EXTRACTION, exc) from exc

        try:
            return self.parser.parse(raw_text)
        except InvalidFieldMap as exc:
            raise _stage_error(Stage.MAPPING, exc) from exc

    async def run(self, source: bytes, target: bytes) -> PipelineResult:
        """Extract data from ``source`` and fill it onto ``target``.

        Args:
            source: Source document bytes.
            target: Target document bytes.

        Returns:
            Field map, placement plan, and fill result.

        Raises:
            PipelineError: If any stage fails.
        """
        field_map = await self.extract(source)
        return await self.fill_mapping(target, field_map)

    async def fill_mapping(self, target: bytes, field_map: FieldMap) -> PipelineResult:
        """Resolve the layout for an existing field map and fill the target.

        Args:
            target: Target document bytes.
            field_map: Values to write.

        Returns:
            Field map, placement plan, and fill result.

        Raises:
            PipelineError: If the target cannot be loaded or a later stage
                fails unexpectedly.
        """
        try:
            doc = TargetDocument.load(target)
        except TargetLoadFailure as exc:
            raise _stage_error(Stage.TARGET, exc) from exc

        with doc:
            try:
                plan = await self.resolver.resolve(doc, field_map)
            except Exception as exc:
                raise _stage_error(Stage.LAYOUT, exc) from exc

        logger.info(
            "Resolved %d placements in %s mode", len(plan), plan.mode.value
        )

        try:
            result = self.engine.fill(target, plan)
        except Exception as exc:
            raise _stage_error(Stage.FILL, exc) from exc

        return PipelineResult(field_map=field_map, plan=plan, fill=result)
