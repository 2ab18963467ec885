"""
Tests for element attention analysis.
"""

import pytest

from gazeheat.analytics.attention import AttentionAnalyzer, format_report
from gazeheat.storage.schema import ElementRef, Rect, Sample, SampleSource

MOUSE = SampleSource.MOUSE
GAZE = SampleSource.GAZE

BUTTON = ElementRef("BUTTON", "Buy now", rect=Rect(0, 0, 100, 40))
LINK = ElementRef("A", "Pricing", href="https://example.com/pricing")
IMAGE = ElementRef("IMG", "", src="https://example.com/hero.png")


def on(element, source=MOUSE, timestamp=0, x=10.0, y=10.0):
    weight = 1.0 if source == MOUSE else 0.8
    return Sample(x=x, y=y, timestamp_ms=timestamp, source=source, weight=weight, target=element)


class TestAnalyze:
    """Tests for AttentionAnalyzer.analyze."""

    @pytest.fixture
    def analyzer(self):
        return AttentionAnalyzer()

    def test_ranking(self, analyzer):
        samples = [on(BUTTON), on(BUTTON), on(LINK), on(BUTTON), on(IMAGE), on(LINK)]

        report = analyzer.analyze(samples)

        assert [(e.element, e.count) for e in report.top] == [(BUTTON, 3), (LINK, 2), (IMAGE, 1)]

    def test_ties_keep_first_occurrence(self, analyzer):
        samples = [on(LINK), on(BUTTON), on(BUTTON), on(LINK)]

        report = analyzer.analyze(samples)

        assert [e.element for e in report.top] == [LINK, BUTTON]

    def test_top_n(self, analyzer):
        samples = [on(ElementRef("DIV", f"block {i}")) for i in range(8)]

        assert len(analyzer.analyze(samples).top) == 5
        assert len(analyzer.analyze(samples, top_n=3).top) == 3

    def test_equal_snapshots_group_together(self, analyzer):
        """Grouping uses the element's content, not object identity."""
        a = ElementRef("P", "Hello", rect=Rect(0, 0, 10, 10))
        b = ElementRef("P", "Hello", rect=Rect(500, 500, 10, 10))

        report = analyzer.analyze([on(a), on(b)])

        assert len(report.top) == 1
        assert report.top[0].count == 2

    def test_sources_ranked_separately(self, analyzer):
        samples = [on(BUTTON), on(BUTTON), on(BUTTON, GAZE)]

        report = analyzer.analyze(samples)

        assert [(e.source, e.count) for e in report.top] == [(MOUSE, 2), (GAZE, 1)]
        for entry in report.top:
            assert entry.source_breakdown == {MOUSE: 2, GAZE: 1}

    def test_untargeted_samples_counted_in_totals(self, analyzer):
        samples = [on(BUTTON), on(None), on(None, GAZE), on(LINK, GAZE)]

        report = analyzer.analyze(samples)

        assert report.total_samples == 4
        assert report.gaze_samples == 2
        assert report.mouse_samples == 2
        assert sum(e.count for e in report.top) == 2

    def test_duration(self, analyzer):
        samples = [on(BUTTON, timestamp=120), on(LINK, timestamp=4120), on(None, timestamp=900)]

        assert analyzer.analyze(samples).duration_ms == 4000

    def test_empty(self, analyzer):
        report = analyzer.analyze([])

        assert report.total_samples == 0
        assert report.duration_ms == 0
        assert report.top == []

    def test_to_dict(self, analyzer):
        data = analyzer.analyze([on(BUTTON), on(BUTTON, GAZE)]).to_dict()

        assert data["totalSamples"] == 2
        assert data["topElements"][0]["element"]["tagName"] == "BUTTON"
        assert data["topElements"][0]["breakdown"] == {"mouse": 1, "gaze": 1}


class TestHesitations:
    """Tests for AttentionAnalyzer.find_hesitations."""

    @pytest.fixture
    def analyzer(self):
        return AttentionAnalyzer()

    def gaze_run(self, count, spread=0.0, start=0):
        return [
            on(None, GAZE, timestamp=start + i * 100, x=300 + i * spread, y=200.0)
            for i in range(count)
        ]

    def test_steady_gaze(self, analyzer):
        hesitations = analyzer.find_hesitations(self.gaze_run(11))

        assert len(hesitations) == 1
        assert hesitations[0].timestamp_ms == 1000
        assert hesitations[0].duration_ms == 1000

    def test_window_must_be_full(self, analyzer):
        assert analyzer.find_hesitations(self.gaze_run(10)) == []

    def test_moving_gaze(self, analyzer):
        assert analyzer.find_hesitations(self.gaze_run(20, spread=5.0)) == []

    def test_mouse_samples_ignored(self, analyzer):
        samples = self.gaze_run(6) + [on(None, MOUSE, x=900)] + self.gaze_run(5, start=600)

        assert len(analyzer.find_hesitations(samples)) == 1

    def test_custom_window(self, analyzer):
        assert len(analyzer.find_hesitations(self.gaze_run(5), window=3, radius=30)) == 2


class TestFormatReport:
    def test_contains_totals_and_elements(self):
        analyzer = AttentionAnalyzer()
        report = analyzer.analyze([on(BUTTON), on(BUTTON), on(LINK, GAZE)])

        text = format_report(report)

        assert "Total samples: 3" in text
        assert "<button> 'Buy now'" in text
        assert "href=https://example.com/pricing" in text

    def test_empty_report(self):
        text = format_report(AttentionAnalyzer().analyze([]))

        assert "no samples landed on an element" in text
