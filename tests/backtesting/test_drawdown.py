"""
DrawdownAnalyzer 모듈 테스트

낙폭 시계열, 구간 식별, 종합 리포트 검증
"""

from datetime import date, timedelta
from decimal import Decimal

import pytest
from src.backtesting.drawdown import DrawdownAnalyzer, analyze_drawdowns
from src.backtesting.portfolio import Snapshot

START = date(2024, 1, 1)


def _dates(n):
    return [START + timedelta(days=i) for i in range(n)]


class TestDrawdownAnalyzer:
    """낙폭 분석 테스트"""

    @pytest.fixture
    def analyzer(self):
        # 고점 100 → 90 → 회복(100) → 80 (미회복) → 85
        values = [100, 90, 95, 100, 80, 85]
        return DrawdownAnalyzer(_dates(len(values)), values)

    def test_drawdown_series(self, analyzer):
        series = analyzer.drawdown_series()
        assert list(series) == pytest.approx([0.0, -0.10, -0.05, 0.0, -0.20, -0.15])

    def test_underwater_index(self, analyzer):
        underwater = analyzer.underwater()
        assert underwater.index[0] == START
        assert underwater.name == 'drawdown'

    def test_identify_periods(self, analyzer):
        periods = analyzer.identify_periods()
        assert len(periods) == 2

        first, second = periods
        assert first.start_date == START + timedelta(days=1)
        assert first.trough_date == START + timedelta(days=1)
        assert first.recovery_date == START + timedelta(days=3)
        assert first.depth == pytest.approx(-0.10)
        assert first.duration == 2
        assert first.recovery_days == 2
        assert first.recovered

        assert second.start_date == START + timedelta(days=4)
        assert second.recovery_date is None
        assert second.recovery_days is None
        assert second.duration == 2
        assert second.peak_value == 100.0
        assert second.trough_value == 80.0
        assert not second.recovered

    def test_analyze(self, analyzer):
        report = analyzer.analyze()

        assert report.max_drawdown == pytest.approx(-0.20)
        assert report.average_drawdown == pytest.approx((-0.10 - 0.05 - 0.20 - 0.15) / 4)
        assert report.max_drawdown_duration == 2
        assert report.average_recovery_time == pytest.approx(2.0)
        assert report.drawdown_frequency == 2
        assert report.worst_drawdowns[0].depth == pytest.approx(-0.20)

    def test_worst_n_limit(self):
        values = [100, 99, 100, 98, 100, 97, 100, 96, 100, 95, 100, 94, 100]
        report = DrawdownAnalyzer(_dates(len(values)), values).analyze(worst_n=5)

        assert report.drawdown_frequency == 6
        assert len(report.worst_drawdowns) == 5
        assert [p.trough_value for p in report.worst_drawdowns] == [94.0, 95.0, 96.0, 97.0, 98.0]

    def test_no_drawdown(self):
        report = DrawdownAnalyzer(_dates(4), [100, 101, 102, 103]).analyze()
        assert report.max_drawdown == 0.0
        assert report.drawdown_frequency == 0
        assert report.worst_drawdowns == ()

    def test_empty(self):
        report = DrawdownAnalyzer([], []).analyze()
        assert report.max_drawdown == 0.0
        assert report.periods == ()

    def test_length_mismatch(self):
        with pytest.raises(ValueError):
            DrawdownAnalyzer(_dates(2), [100])

    def test_to_dict(self, analyzer):
        d = analyzer.analyze().to_dict()
        assert d['drawdown_frequency'] == 2
        assert d['worst_drawdowns'][0]['recovery_date'] is None


class TestAnalyzeDrawdowns:
    def test_from_history(self):
        history = [
            Snapshot(d, Decimal(v), Decimal(v), {}, {})
            for d, v in zip(_dates(3), ['100', '50', '100'])
        ]
        report = analyze_drawdowns(history)
        assert report.max_drawdown == pytest.approx(-0.5)
        assert report.periods[0].recovery_days == 1
