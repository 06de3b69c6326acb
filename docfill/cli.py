"""Command-line interface for filling target documents.

Provides subcommands to run the full extraction-and-fill pipeline, to
extract a field map only, to overlay an existing field map onto a target,
and to list a target's native form fields.
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

import anthropic

from docfill.errors import InvalidFieldMap, PipelineError, TargetLoadFailure
from docfill.extraction.parser import MappingParser
from docfill.fill.engine import FillEngine, FillResult
from docfill.layout.resolver import LayoutResolver
from docfill.layout.target import TargetDocument
from docfill.pipeline import FillPipeline, PipelineResult
from docfill.utils.config import AppConfig, load_config
from docfill.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)


def _default_output(target: Path) -> Path:
    return target.with_name(f"filled_{target.name}")


async def _with_pipeline(config: AppConfig, action):
    async with anthropic.AsyncAnthropic() as client:
        pipeline = FillPipeline.from_config(config, client)
        return await action(pipeline)


def fill_document(
    source: Path,
    target: Path,
    output: Path,
    config: AppConfig,
) -> PipelineResult:
    """Run the whole pipeline and write the filled document.

    Args:
        source: Source document to extract data from.
        target: Target document template.
        output: Path for the filled document.
        config: Application configuration.

    Returns:
        The pipeline result.

    Raises:
        PipelineError: If a stage fails.
    """
    source_bytes = source.read_bytes()
    target_bytes = target.read_bytes()

    result = asyncio.run(
        _with_pipeline(config, lambda p: p.run(source_bytes, target_bytes))
    )

    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(result.document)
    logger.info("Filled document written to %s", output)
    return result


def extract_fields(source: Path, config: AppConfig) -> dict[str, object]:
    """Extract the field map of a source document.

    Args:
        source: Source document.
        config: Application configuration.

    Returns:
        The field map as a plain dictionary.
    """
    source_bytes = source.read_bytes()
    field_map = asyncio.run(_with_pipeline(config, lambda p: p.extract(source_bytes)))
    return dict(field_map)


def overlay_mapping(
    target: Path,
    mapping: Path,
    output: Path,
    config: AppConfig,
) -> FillResult:
    """Fill a target from a field map stored as JSON.

    Args:
        target: Target document template.
        mapping: JSON file holding the field map.
        output: Path for the filled document.
        config: Application configuration.

    Returns:
        The fill result.
    """
    field_map = MappingParser().parse(mapping.read_text(encoding="utf-8"))
    target_bytes = target.read_bytes()

    if config.layout.use_oracle:
        result = asyncio.run(
            _with_pipeline(config, lambda p: p.fill_mapping(target_bytes, field_map))
        ).fill
    else:
        resolver = LayoutResolver(config.layout)
        with TargetDocument.load(target_bytes) as doc:
            plan = asyncio.run(resolver.resolve(doc, field_map))
        result = FillEngine(config.fill, config.layout).fill(target_bytes, plan)

    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(result.document)
    return result


def inspect_target(target: Path) -> list[dict[str, object]]:
    """List the native form fields of a target document."""
    with TargetDocument.load(target.read_bytes()) as doc:
        return [
            {
                "name": f.name,
                "kind": f.kind.value,
                "page": f.page,
                "label": f.label,
                "options": list(f.options),
            }
            for f in doc.native_fields()
        ]


def _print_summary(result: FillResult, output: Path, verbose: bool = False) -> None:
    """Print the fill outcome summary to stdout.

    Args:
        result: Fill result to summarize.
        output: Path of the written document.
        verbose: Whether to list every non-applied field.
    """
    summary = result.summary()
    print(f"\n{'=' * 50}")
    print("Fill Complete")
    print(f"{'=' * 50}")
    print(f"Applied:    {summary['applied']}")
    print(f"Skipped:    {summary['skipped']}")
    print(f"Failed:     {summary['failed']}")
    print(f"Output:     {output}")
    if verbose:
        for outcome in result.skipped + result.failed:
            print(f"  {outcome.status.value:<8} {outcome.key} ({outcome.reason})")


def _fail(message: str) -> None:
    print(f"Error: {message}", file=sys.stderr)
    sys.exit(1)


def main(argv: list[str] | None = None) -> None:
    """Parse CLI arguments and dispatch to the appropriate command.

    Args:
        argv: Command-line arguments (defaults to sys.argv).
    """
    parser = argparse.ArgumentParser(
        description="Extract data from a source document and fill a target PDF",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-c", "--config", type=Path, default=None, help="YAML configuration file"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    fill_parser = subparsers.add_parser("fill", help="Extract from SOURCE and fill TARGET")
    fill_parser.add_argument("source", type=Path, help="Source document")
    fill_parser.add_argument("target", type=Path, help="Target PDF template")
    fill_parser.add_argument(
        "-o", "--output", type=Path, help="Output PDF (default: filled_<target>)"
    )
    fill_parser.add_argument(
        "--no-layout-oracle",
        action="store_true",
        help="Use the fallback layout instead of asking the layout oracle",
    )
    fill_parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")

    extract_parser = subparsers.add_parser("extract", help="Extract a field map only")
    extract_parser.add_argument("source", type=Path, help="Source document")
    extract_parser.add_argument("-o", "--output", type=Path, help="Output JSON file")

    overlay_parser = subparsers.add_parser(
        "overlay", help="Fill TARGET from a field map JSON file"
    )
    overlay_parser.add_argument("target", type=Path, help="Target PDF template")
    overlay_parser.add_argument("mapping", type=Path, help="Field map JSON file")
    overlay_parser.add_argument(
        "-o", "--output", type=Path, help="Output PDF (default: filled_<target>)"
    )
    overlay_parser.add_argument(
        "--no-layout-oracle",
        action="store_true",
        help="Use the fallback layout instead of asking the layout oracle",
    )
    overlay_parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")

    inspect_parser = subparsers.add_parser("inspect", help="List native form fields")
    inspect_parser.add_argument("target", type=Path, help="Target PDF")

    args = parser.parse_args(argv)

    config = load_config(args.config)
    setup_logging(config.log_level)

    if getattr(args, "no_layout_oracle", False):
        config.layout.use_oracle = False

    for name in ("source", "target", "mapping"):
        path = getattr(args, name, None)
        if path is not None and not path.exists():
            _fail(f"{path} does not exist")

    if args.command == "fill":
        output = args.output or _default_output(args.target)
        try:
            result = fill_document(args.source, args.target, output, config)
        except PipelineError as exc:
            _fail(f"{exc.stage.value} stage failed: {exc.reason}")
        except anthropic.AnthropicError as exc:
            _fail(f"oracle client unavailable: {exc}")
        _print_summary(result.fill, output, args.verbose)
    elif args.command == "extract":
        try:
            fields = extract_fields(args.source, config)
        except PipelineError as exc:
            _fail(f"{exc.stage.value} stage failed: {exc.reason}")
        except anthropic.AnthropicError as exc:
            _fail(f"oracle client unavailable: {exc}")
        output_str = json.dumps(fields, indent=2, ensure_ascii=False)
        if args.output:
            args.output.parent.mkdir(parents=True, exist_ok=True)
            args.output.write_text(output_str, encoding="utf-8")
            print(f"Output written to {args.output}")
        else:
            print(output_str)
    elif args.command == "overlay":
        output = args.output or _default_output(args.target)
        try:
            result = overlay_mapping(args.target, args.mapping, output, config)
        except (InvalidFieldMap, TargetLoadFailure, PipelineError, anthropic.AnthropicError) as exc:
            _fail(str(exc))
        _print_summary(result, output, args.verbose)
    elif args.command == "inspect":
        try:
            fields = inspect_target(args.target)
        except TargetLoadFailure as exc:
            _fail(str(exc))
        print(json.dumps(fields, indent=2, ensure_ascii=False))
    else:
        parser.print_help()
        sys.exit(0)


if __name__ == "__main__":
    main()
