"""Tests for target document loading and native field introspection."""

import pytest

from docfill.errors import TargetLoadFailure
from docfill.layout.plan import NativeKind
from docfill.layout.target import TargetDocument

from conftest import make_form_pdf, make_pdf


class TestTargetLoad:
    """Tests for TargetDocument.load."""

    def test_empty_bytes(self) -> None:
        with pytest.raises(TargetLoadFailure, match="empty"):
            TargetDocument.load(b"")

    def test_unreadable_bytes(self) -> None:
        with pytest.raises(TargetLoadFailure):
            TargetDocument.load(b"this is not a pdf")

    def test_page_geometry(self) -> None:
        with TargetDocument.load(make_pdf(pages=2, width=595, height=842)) as doc:
            assert doc.page_count == 2
            assert doc.page_size(2) == (595, 842)

    def test_close_is_idempotent(self, blank_pdf: bytes) -> None:
        doc = TargetDocument.load(blank_pdf)
        doc.close()
        doc.close()
        assert doc.doc.is_closed

    def test_to_bytes_reopens(self, blank_pdf: bytes) -> None:
        with TargetDocument.load(blank_pdf) as doc:
            data = doc.to_bytes()
        with TargetDocument.load(data) as reopened:
            assert reopened.page_count == 1


class TestNativeFields:
    """Tests for native form field listing."""

    def test_blank_target_has_none(self, blank_pdf: bytes) -> None:
        with TargetDocument.load(blank_pdf) as doc:
            assert doc.native_fields() == []

    def test_fields_in_document_order(self, form_pdf: bytes) -> None:
        with TargetDocument.load(form_pdf) as doc:
            fields = doc.native_fields()

        assert [f.name for f in fields] == ["full_name", "dob", "is_member", "country"]
        assert [f.kind for f in fields] == [
            NativeKind.TEXT,
            NativeKind.TEXT,
            NativeKind.CHECKBOX,
            NativeKind.CHOICE,
        ]
        assert all(f.page == 1 for f in fields)

    def test_choice_options(self, form_pdf: bytes) -> None:
        with TargetDocument.load(form_pdf) as doc:
            country = doc.native_fields()[-1]
        assert country.options == ("France", "Germany", "Spain")

    def test_visible_label(self) -> None:
        pdf = make_form_pdf(text_fields=["Text1"], labels={"Text1": "Email address"})
        with TargetDocument.load(pdf) as doc:
            (field,) = doc.native_fields()
        assert field.label == "Email address"
        assert field.target == "Text1"
