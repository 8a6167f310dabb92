"""Tests for spans around requests, probes and encode attempts."""

import httpx
import pytest
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import StatusCode

from discompress.core import tracing
from discompress.core.tracing import add_span_attributes, create_span, get_span_id, get_trace_id
from discompress.main import create_app

TRACE_ID = "4bf92f3577b34da6a3ce929d0e0e4736"
PARENT_SPAN_ID = "00f067aa0ba902b7"


@pytest.fixture
def exporter(monkeypatch) -> InMemorySpanExporter:
    spans = InMemorySpanExporter()
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(spans))
    monkeypatch.setattr(tracing, "_provider", provider)
    return spans


def _finished(exporter: InMemorySpanExporter, name: str):
    return [span for span in exporter.get_finished_spans() if span.name == name]


class TestCreateSpan:

    def test_records_name_and_attributes(self, exporter) -> None:
        with create_span("compression.probe", attributes={"job.id": "j1"}):
            add_span_attributes({"media.duration": 30.0})

        (span,) = _finished(exporter, "compression.probe")
        assert span.attributes["job.id"] == "j1"
        assert span.attributes["media.duration"] == 30.0

    def test_escaping_exception_marks_span_failed(self, exporter) -> None:
        with pytest.raises(RuntimeError):
            with create_span("compression.encode_attempt"):
                raise RuntimeError("ffmpeg exited with code 1")

        (span,) = _finished(exporter, "compression.encode_attempt")
        assert span.status.status_code == StatusCode.ERROR
        assert span.events[0].name == "exception"

    def test_ids_follow_current_span(self, exporter) -> None:
        assert get_trace_id() is None
        assert get_span_id() is None

        with create_span("outer") as span:
            context = span.get_span_context()
            assert get_trace_id() == format(context.trace_id, "032x")
            assert get_span_id() == format(context.span_id, "016x")


class TestRequestSpans:

    @pytest.mark.asyncio
    async def test_incoming_traceparent_is_continued(self, exporter, settings, fake_transcoder_factory) -> None:
        app = create_app(settings, transcoder=fake_transcoder_factory())

        async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
            response = await client.get(
                "/health", headers={"traceparent": f"00-{TRACE_ID}-{PARENT_SPAN_ID}-01"}
            )

        assert response.status_code == 200
        (span,) = _finished(exporter, "GET /health")
        assert format(span.context.trace_id, "032x") == TRACE_ID
        assert format(span.parent.span_id, "016x") == PARENT_SPAN_ID
        assert span.attributes["http.status_code"] == 200

    @pytest.mark.asyncio
    async def test_upload_records_probe_and_each_attempt(self, exporter, settings, fake_transcoder_factory) -> None:
        app = create_app(settings, transcoder=fake_transcoder_factory(sizes=[4000, 10]))

        async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
            response = await client.post(
                "/api/upload", files={"video": ("clip.mov", b"fake-video", "video/quicktime")}
            )

        assert response.status_code == 200
        assert len(_finished(exporter, "compression.probe")) == 1
        attempts = _finished(exporter, "compression.encode_attempt")
        assert [span.attributes["attempt.index"] for span in attempts] == [0, 1]
        assert [span.attributes["attempt.result_bytes"] for span in attempts] == [4000, 10]

        await app.state.compression_service.cleanup.drain()
