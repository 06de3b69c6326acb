"""Failure taxonomy for the extraction, layout, and fill stages.

``ExtractionUnavailable``, ``InvalidFieldMap`` and ``TargetLoadFailure`` end
a run and reach the caller wrapped in a ``PipelineError``.
``LayoutUnavailable`` and ``FieldApplyFailure`` are absorbed by the layout
resolver and the fill engine respectively.
"""

from enum import StrEnum


class DocFillError(RuntimeError):
    """Base class for all pipeline errors."""


class ExtractionUnavailable(DocFillError):
    """The extraction oracle was unreachable or returned no usable content."""


class InvalidFieldMap(DocFillError):
    """Oracle text did not parse into a valid scalar field map."""


class LayoutUnavailable(DocFillError):
    """The layout oracle failed or returned an unusable placement list."""


class TargetLoadFailure(DocFillError):
    """The target document could not be opened."""


class FieldApplyFailure(DocFillError):
    """A single placement could not be written onto the target."""


class Stage(StrEnum):
    """Pipeline stages that can end a run."""

    EXTRACTION = "extraction"
    MAPPING = "mapping"
    TARGET = "target"
    LAYOUT = "layout"
    FILL = "fill"


class PipelineError(DocFillError):
    """Terminal error of a pipeline run.

    Args:
        stage: Stage that failed.
        reason: Human-readable failure reason.
    """

    def __init__(self, stage: Stage, reason: str) -> None:
        super().__init__(f"{stage.value} stage failed: {reason}")
        self.stage = stage
        self.reason = reason

    def to_dict(self) -> dict[str, str]:
        """Return the error as a JSON-serializable status payload."""
        return {"status": "error", "stage": self.stage.value, "error": self.reason}
