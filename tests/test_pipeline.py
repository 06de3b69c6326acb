"""End-to-end tests for the fill pipeline with a mocked oracle client."""

import asyncio
import json
from unittest.mock import MagicMock, patch

import pytest

from docfill.errors import PipelineError, Stage
from docfill.extraction.parser import FieldMap
from docfill.fill.engine import OutcomeStatus
from docfill.layout.plan import LayoutSource, PlanMode
from docfill.pipeline import FillPipeline
from docfill.utils.config import AppConfig, LayoutConfig

from conftest import mock_client, oracle_response, page_text, widget_values

SOURCE = b"Applicant: Jane Doe\nBorn: 1990-01-01\nCity: Lyon\nMember: yes"
EXTRACTED = {
    "full_name": "Jane Doe",
    "dob": "1990-01-01",
    "city": "Lyon",
    "is_member": "yes",
}


def _answer(payload: object) -> object:
    text = payload if isinstance(payload, str) else json.dumps(payload)
    return oracle_response({"type": "text", "text": text})


def _pipeline(*responses: object, config: AppConfig | None = None) -> tuple[FillPipeline, MagicMock]:
    client = mock_client(*responses)
    return FillPipeline.from_config(config or AppConfig(), client), client


class TestPipelineSuccess:
    """Tests for successful pipeline runs."""

    def test_native_fill(self, form_pdf: bytes) -> None:
        pipeline, client = _pipeline(_answer(f"```json\n{json.dumps(EXTRACTED)}\n```"))

        result = asyncio.run(pipeline.run(SOURCE, form_pdf))

        assert result.plan.mode is PlanMode.NATIVE
        assert dict(result.field_map) == EXTRACTED
        values = widget_values(result.document)
        assert values["full_name"] == "Jane Doe"
        assert values["dob"] == "1990-01-01"
        assert values["is_member"] not in ("Off", False)
        assert result.fill.failed == []
        assert client.messages.create.await_count == 1

    def test_coordinate_fill_with_oracle_layout(self, blank_pdf: bytes) -> None:
        layout = {"fields": [{"key": "full_name", "page": 1, "x": 72, "y": 700}]}
        pipeline, client = _pipeline(_answer(EXTRACTED), _answer(layout))

        result = asyncio.run(pipeline.run(SOURCE, blank_pdf))

        assert result.plan.source is LayoutSource.ORACLE
        assert [o.status for o in result.fill.outcomes] == [OutcomeStatus.APPLIED]
        assert "Jane Doe" in page_text(result.document)
        assert client.messages.create.await_count == 2

    def test_coordinate_fill_with_fallback(self, blank_pdf: bytes) -> None:
        pipeline, _ = _pipeline(_answer(EXTRACTED), _answer("no layout for you"))

        result = asyncio.run(pipeline.run(SOURCE, blank_pdf))

        assert result.plan.source is LayoutSource.FALLBACK
        assert len(result.fill.applied) == 4
        assert "full_name: Jane Doe" in page_text(result.document)

    def test_layout_oracle_disabled(self, blank_pdf: bytes) -> None:
        config = AppConfig(layout=LayoutConfig(use_oracle=False))
        pipeline, client = _pipeline(_answer(EXTRACTED), config=config)

        result = asyncio.run(pipeline.run(SOURCE, blank_pdf))

        assert result.plan.source is LayoutSource.FALLBACK
        assert client.messages.create.await_count == 1

    def test_layout_client_error_falls_back(self, blank_pdf: bytes) -> None:
        pipeline, _ = _pipeline(TypeError("Could not resolve authentication method"))

        result = asyncio.run(pipeline.fill_mapping(blank_pdf, FieldMap({"a": "1"})))

        assert result.plan.source is LayoutSource.FALLBACK
        assert "a: 1" in page_text(result.document)

    def test_fill_mapping_skips_extraction(self, form_pdf: bytes) -> None:
        pipeline, client = _pipeline()

        result = asyncio.run(pipeline.fill_mapping(form_pdf, FieldMap({"full_name": "Ann"})))

        assert widget_values(result.document)["full_name"] == "Ann"
        client.messages.create.assert_not_awaited()


class TestPipelineErrors:
    """Tests for stage-tagged pipeline failures."""

    def test_extraction_timeout(self, form_pdf: bytes) -> None:
        pipeline, _ = _pipeline(TimeoutError())

        with pytest.raises(PipelineError) as exc_info:
            asyncio.run(pipeline.run(SOURCE, form_pdf))

        assert exc_info.value.stage is Stage.EXTRACTION
        assert exc_info.value.to_dict()["status"] == "error"

    def test_client_without_credentials(self, blank_pdf: bytes) -> None:
        pipeline, _ = _pipeline(TypeError("Could not resolve authentication method"))

        with pytest.raises(PipelineError) as exc_info:
            asyncio.run(pipeline.run(b"hello world", blank_pdf))

        assert exc_info.value.stage is Stage.EXTRACTION
        assert "authentication" in exc_info.value.reason

    def test_empty_source(self, form_pdf: bytes) -> None:
        pipeline, client = _pipeline()

        with pytest.raises(PipelineError) as exc_info:
            asyncio.run(pipeline.run(b"", form_pdf))

        assert exc_info.value.stage is Stage.EXTRACTION
        client.messages.create.assert_not_awaited()

    def test_mapping_failure(self, form_pdf: bytes) -> None:
        pipeline, _ = _pipeline(_answer("not json"))

        with pytest.raises(PipelineError) as exc_info:
            asyncio.run(pipeline.run(SOURCE, form_pdf))

        assert exc_info.value.stage is Stage.MAPPING
        assert "JSON" in exc_info.value.reason

    def test_target_failure(self) -> None:
        pipeline, _ = _pipeline(_answer(EXTRACTED))

        with pytest.raises(PipelineError) as exc_info:
            asyncio.run(pipeline.run(SOURCE, b"not a pdf"))

        assert exc_info.value.stage is Stage.TARGET
        assert str(exc_info.value).startswith("target stage failed")

    def test_unexpected_fill_error(self, form_pdf: bytes) -> None:
        pipeline, _ = _pipeline(_answer(EXTRACTED))

        with patch.object(pipeline.engine, "fill", side_effect=RuntimeError("disk full")):
            with pytest.raises(PipelineError) as exc_info:
                asyncio.run(pipeline.run(SOURCE, form_pdf))

        assert exc_info.value.stage is Stage.FILL
        assert exc_info.value.reason == "disk full"
