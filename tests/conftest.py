"""Shared test fixtures for the document fill test suite."""

from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import fitz
import pytest


def make_pdf(pages: int = 1, width: float = 612, height: float = 792) -> bytes:
    """Create a blank PDF with the given number of pages."""
    doc = fitz.open()
    for _ in range(pages):
        doc.new_page(width=width, height=height)
    data = doc.tobytes()
    doc.close()
    return data


def make_form_pdf(
    text_fields: list[str] | None = None,
    checkboxes: list[str] | None = None,
    choices: dict[str, list[str]] | None = None,
    labels: dict[str, str] | None = None,
) -> bytes:
    """Create a one-page PDF form with the given widgets."""
    labels = labels or {}
    doc = fitz.open()
    page = doc.new_page(width=612, height=792)
    y = 50.0

    def _add(name: str, field_type: int, **attrs: object) -> None:
        nonlocal y
        widget = fitz.Widget()
        widget.field_name = name
        widget.field_type = field_type
        widget.rect = fitz.Rect(100, y, 300, y + 20)
        if name in labels:
            widget.field_label = labels[name]
        for attr, value in attrs.items():
            setattr(widget, attr, value)
        page.add_widget(widget)
        y += 30

    for name in text_fields or []:
        _add(name, fitz.PDF_WIDGET_TYPE_TEXT, field_value="")
    for name in checkboxes or []:
        _add(name, fitz.PDF_WIDGET_TYPE_CHECKBOX, field_value=False)
    for name, options in (choices or {}).items():
        _add(
            name,
            fitz.PDF_WIDGET_TYPE_COMBOBOX,
            choice_values=options,
            field_value=options[0],
        )

    data = doc.tobytes()
    doc.close()
    return data


def widget_values(pdf: bytes) -> dict[str, object]:
    """Read back ``field_name -> field_value`` from a PDF."""
    values: dict[str, object] = {}
    with fitz.open(stream=pdf, filetype="pdf") as doc:
        for page in doc:
            for widget in page.widgets():
                values[widget.field_name] = widget.field_value
    return values


def page_text(pdf: bytes, page: int = 1) -> str:
    """Return the plain text of a 1-based page."""
    with fitz.open(stream=pdf, filetype="pdf") as doc:
        return doc[page - 1].get_text()


def oracle_response(*blocks: dict) -> SimpleNamespace:
    """Build a Messages API response carrying the given content blocks."""
    return SimpleNamespace(content=list(blocks))


def mock_client(*responses: object) -> MagicMock:
    """Create an SDK client whose ``messages.create`` returns/raises in turn."""
    client = MagicMock()
    client.messages.create = AsyncMock(side_effect=list(responses))
    return client


@pytest.fixture
def blank_pdf() -> bytes:
    """A one-page letter-size PDF without form fields."""
    return make_pdf()


@pytest.fixture
def form_pdf() -> bytes:
    """A form with text, checkbox, and choice fields."""
    return make_form_pdf(
        text_fields=["full_name", "dob"],
        checkboxes=["is_member"],
        choices={"country": ["France", "Germany", "Spain"]},
    )


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def config_dir(project_root: Path) -> Path:
    """Return the configs directory path."""
    return project_root / "configs"
