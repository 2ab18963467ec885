"""
Tests for session data schema and serialization.
"""

import json

import pytest

from gazeheat.core.errors import SessionFinalizedError
from gazeheat.storage.schema import (
    TEXT_SNIPPET_LENGTH,
    ElementRef,
    Rect,
    Sample,
    SampleSource,
    Session,
    Viewport,
)


class TestElementRef:
    def test_text_truncated(self):
        element = ElementRef("P", "x" * 250)

        assert len(element.text) == TEXT_SNIPPET_LENGTH

    def test_signature_ignores_rect(self):
        a = ElementRef("A", "Docs", href="/docs", rect=Rect(0, 0, 10, 10))
        b = ElementRef("A", "Docs", href="/docs", rect=Rect(50, 50, 10, 10))

        assert a.signature == b.signature

    def test_dict_keys(self):
        data = ElementRef("IMG", src="/logo.png", rect=Rect(1, 2, 3, 4)).to_dict()

        assert data == {
            "tagName": "IMG",
            "text": "",
            "href": None,
            "src": "/logo.png",
            "rect": {"x": 1, "y": 2, "width": 3, "height": 4},
        }


class TestRect:
    def test_contains_is_half_open(self):
        rect = Rect(10, 10, 20, 20)

        assert rect.contains(10, 10)
        assert rect.contains(29.9, 29.9)
        assert not rect.contains(30, 15)
        assert not rect.contains(15, 9.9)


class TestSample:
    def test_validate_mouse_weight(self):
        with pytest.raises(ValueError):
            Sample(1, 1, 0, SampleSource.MOUSE, weight=0.5).validate()

    @pytest.mark.parametrize("weight", [0.0, 1.5, -0.1])
    def test_validate_gaze_weight(self, weight):
        with pytest.raises(ValueError):
            Sample(1, 1, 0, SampleSource.GAZE, weight=weight).validate()

    def test_validate_timestamp(self):
        with pytest.raises(ValueError):
            Sample(1, 1, -5, SampleSource.MOUSE).validate()

    def test_from_dict_reads_confidence(self):
        sample = Sample.from_dict({"x": 1, "y": 2, "timestamp": 30, "source": "gaze", "confidence": 0.4})

        assert sample.weight == pytest.approx(0.4)
        assert sample.target is None


class TestSession:
    """Tests for Session lifecycle and export format."""

    @pytest.fixture
    def session(self):
        button = ElementRef("BUTTON", "Go", rect=Rect(0, 0, 50, 20))
        session = Session(1700000000000, url="https://example.com", title="Example", viewport=Viewport(1280, 720))
        session.append(Sample(10, 10, 0, SampleSource.MOUSE, target=button))
        session.append(Sample(400, 300, 16, SampleSource.GAZE, weight=0.7))
        session.append(Sample(12, 11, 33, SampleSource.MOUSE, target=button))
        session.append(Sample(402, 305, 50, SampleSource.GAZE, weight=0.9, target=button))
        return session

    def test_append_after_finalize(self, session):
        session.finalize()

        with pytest.raises(SessionFinalizedError):
            session.append(Sample(0, 0, 60, SampleSource.MOUSE))

    def test_samples_of(self, session):
        assert len(session.samples_of(SampleSource.GAZE)) == 2

    def test_export_format(self, session):
        data = session.to_dict()

        assert set(data) == {"timestamp", "url", "title", "mouseData", "gazeData", "dimensions"}
        assert data["dimensions"] == {"width": 1280, "height": 720}
        assert [entry["index"] for entry in data["mouseData"]] == [0, 2]
        assert data["mouseData"][0]["metadata"]["tagName"] == "BUTTON"
        assert data["gazeData"][0]["metadata"] is None
        assert data["gazeData"][1]["weight"] == pytest.approx(0.9)

    def test_round_trip_through_json(self, session):
        session.finalize()

        restored = Session.from_dict(json.loads(json.dumps(session.to_dict())))

        assert restored.samples == session.samples
        assert restored.url == session.url
        assert restored.viewport == session.viewport
        assert restored.finalized

    def test_from_dict_without_index(self):
        data = {
            "timestamp": 1,
            "mouseData": [{"x": 1, "y": 1, "timestamp": 5}],
            "gazeData": [{"x": 2, "y": 2, "timestamp": 6, "confidence": 0.5}],
        }

        session = Session.from_dict(data)

        assert [s.source for s in session.samples] == [SampleSource.MOUSE, SampleSource.GAZE]
        session.validate()

    def test_validate(self, session):
        assert session.validate()
