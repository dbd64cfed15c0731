"""Tests for the end-to-end pipeline with fake sources and delivery."""

import pytest

from substack_kindle import converter
from substack_kindle.config import ConversionOptions, EmailConfig
from substack_kindle.content import ContentSource
from substack_kindle.errors import AcquisitionError, DeliveryError, UnsupportedFormatError
from substack_kindle.models import BodyStatus, ContentRecord, OutputFormat, Strategy
from substack_kindle.pipeline import check_body, run_pipeline

CONFIG = EmailConfig(
    sender="me@example.com",
    recipient="me@kindle.com",
    password="secret",
    smtp_host="smtp.example.com",
)


class StaticSource(ContentSource):
    def __init__(self, record):
        self.record = record
        self.calls = 0

    @property
    def description(self):
        return self.record.source

    def acquire(self):
        self.calls += 1
        return self.record


def _record(body="<p>Body text.</p>", status=BodyStatus.FOUND):
    return ContentRecord(
        title="Weekly Notes",
        author="Jane Writer",
        body=body,
        source="https://example.substack.com/p/test",
        body_status=status,
    )


@pytest.fixture(autouse=True)
def no_converter(monkeypatch):
    monkeypatch.setattr(converter, "converter_available", lambda command: False)


class RecordingDelivery:
    def __init__(self, error=None):
        self.error = error
        self.delivered = []

    def __call__(self, outcome, config):
        assert outcome.path.exists()
        self.delivered.append((outcome.path, outcome.format, outcome.title, outcome.author))
        if self.error:
            raise self.error


class TestRunPipeline:
    def test_successful_run_sends_once_and_cleans_up(self, tmp_path):
        source = StaticSource(_record())
        deliver = RecordingDelivery()

        result = run_pipeline(source, "azw3", CONFIG, deliver=deliver, workdir=tmp_path)

        assert len(deliver.delivered) == 1
        path, fmt, title, author = deliver.delivered[0]
        assert fmt is OutputFormat.AZW3
        assert (title, author) == ("Weekly Notes", "Jane Writer")
        assert not path.exists()
        assert result.cleaned_up
        assert result.outcome.strategy is Strategy.DIRECT
        assert result.total_seconds >= result.convert_seconds

    def test_creates_and_removes_its_own_scratch_directory(self):
        deliver = RecordingDelivery()

        run_pipeline(StaticSource(_record()), "epub", CONFIG, deliver=deliver)

        path = deliver.delivered[0][0]
        assert not path.exists()
        assert not path.parent.exists()

    def test_invalid_format_fails_before_acquisition(self, tmp_path):
        source = StaticSource(_record())
        deliver = RecordingDelivery()

        with pytest.raises(UnsupportedFormatError):
            run_pipeline(source, "docx", CONFIG, deliver=deliver, workdir=tmp_path)

        assert source.calls == 0
        assert deliver.delivered == []

    def test_delivery_failure_keeps_the_file(self, tmp_path):
        deliver = RecordingDelivery(error=DeliveryError("relay down"))

        with pytest.raises(DeliveryError):
            run_pipeline(StaticSource(_record()), "epub", CONFIG, deliver=deliver, workdir=tmp_path)

        assert deliver.delivered[0][0].exists()

    def test_missing_body_still_sends_by_default(self, tmp_path):
        deliver = RecordingDelivery()

        run_pipeline(
            StaticSource(_record(body="", status=BodyStatus.NOT_FOUND)),
            "epub",
            CONFIG,
            deliver=deliver,
            workdir=tmp_path,
        )

        assert len(deliver.delivered) == 1

    def test_required_body_aborts_before_conversion(self, tmp_path):
        deliver = RecordingDelivery()
        options = ConversionOptions(require_body=True)

        with pytest.raises(AcquisitionError):
            run_pipeline(
                StaticSource(_record(body="", status=BodyStatus.NOT_FOUND)),
                "epub",
                CONFIG,
                options=options,
                deliver=deliver,
                workdir=tmp_path,
            )

        assert deliver.delivered == []
        assert list(tmp_path.iterdir()) == []


class TestCheckBody:
    def test_found_body_passes(self):
        check_body(_record(), require_body=True)

    def test_empty_body_warns(self, caplog):
        check_body(_record(body="", status=BodyStatus.EMPTY), require_body=False)

        assert "empty" in caplog.text

    def test_empty_body_can_be_fatal(self):
        with pytest.raises(AcquisitionError, match="empty"):
            check_body(_record(body="", status=BodyStatus.EMPTY), require_body=True)
