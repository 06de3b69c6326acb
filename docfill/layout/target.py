"""Target document loading and form-field introspection with PyMuPDF."""

from collections.abc import Iterator

import fitz

from docfill.errors import TargetLoadFailure
from docfill.utils.logger import get_logger

from .plan import NativeField, NativeKind

logger = get_logger(__name__)

WIDGET_KINDS: dict[int, NativeKind] = {
    fitz.PDF_WIDGET_TYPE_TEXT: NativeKind.TEXT,
    fitz.PDF_WIDGET_TYPE_CHECKBOX: NativeKind.CHECKBOX,
    fitz.PDF_WIDGET_TYPE_COMBOBOX: NativeKind.CHOICE,
    fitz.PDF_WIDGET_TYPE_LISTBOX: NativeKind.CHOICE,
    fitz.PDF_WIDGET_TYPE_RADIOBUTTON: NativeKind.CHOICE,
}


def choice_options(widget: fitz.Widget) -> list[str]:
    """Return the selectable export values of a choice or radio widget."""
    if widget.field_type == fitz.PDF_WIDGET_TYPE_RADIOBUTTON:
        state = widget.on_state()
        return [str(state)] if state and state is not True else []
    options: list[str] = []
    for item in widget.choice_values or []:
        if isinstance(item, list | tuple):
            options.append(str(item[0]))
        else:
            options.append(str(item))
    return options


class TargetDocument:
    """An opened target PDF owned by a single pipeline run.

    Use :meth:`load` to open one from bytes. The document is mutated in
    place by the fill engine and must not be shared between runs.

    Args:
        doc: Open PyMuPDF document.
    """

    def __init__(self, doc: fitz.Document) -> None:
        self.doc = doc

    @classmethod
    def load(cls, data: bytes) -> "TargetDocument":
        """Open a target PDF from bytes.

        Args:
            data: Raw PDF bytes.

        Returns:
            The opened target document.

        Raises:
            TargetLoadFailure: If the bytes are empty, unreadable, or the
                document has no pages.
        """
        if not data:
            raise TargetLoadFailure("Target document is empty")
        try:
            doc = fitz.open(stream=data, filetype="pdf")
        except Exception as exc:
            raise TargetLoadFailure(f"Target document is unreadable: {exc}") from exc
        if doc.page_count == 0:
            doc.close()
            raise TargetLoadFailure("Target document has no pages")
        logger.debug("Loaded target document with %d pages", doc.page_count)
        return cls(doc)

    def __enter__(self) -> "TargetDocument":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        if not self.doc.is_closed:
            self.doc.close()

    @property
    def page_count(self) -> int:
        return self.doc.page_count

    def page_size(self, page: int) -> tuple[float, float]:
        """Return ``(width, height)`` of a 1-based page in points."""
        rect = self.doc[page - 1].rect
        return rect.width, rect.height

    def iter_widgets(self) -> Iterator[tuple[int, fitz.Widget]]:
        """Yield ``(page_number, widget)`` for every named form widget."""
        for page in self.doc:
            for widget in page.widgets():
                if widget.field_name:
                    yield page.number + 1, widget

    def native_fields(self) -> list[NativeField]:
        """List the writable native fields in document order.

        Widgets sharing a field name are merged; the first widget provides
        the page and label, and radio on-states are collected as options.

        Returns:
            Native fields of a supported kind.
        """
        order: list[str] = []
        first: dict[str, tuple[int, NativeKind, str | None]] = {}
        options: dict[str, list[str]] = {}

        for page_number, widget in self.iter_widgets():
            kind = WIDGET_KINDS.get(widget.field_type)
            if kind is None:
                continue
            name = widget.field_name
            if name not in first:
                label = (widget.field_label or "").strip() or None
                if label == name:
                    label = None
                first[name] = (page_number, kind, label)
                options[name] = []
                order.append(name)
            if kind is NativeKind.CHOICE:
                for option in choice_options(widget):
                    if option not in options[name]:
                        options[name].append(option)

        fields = [
            NativeField(
                name=name,
                kind=first[name][1],
                page=first[name][0],
                label=first[name][2],
                options=tuple(options[name]),
            )
            for name in order
        ]
        logger.debug("Target exposes %d native fields", len(fields))
        return fields

    def to_bytes(self) -> bytes:
        """Serialize the (possibly modified) document."""
        return self.doc.tobytes(garbage=3, deflate=True)
