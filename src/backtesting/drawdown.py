"""
낙폭(Drawdown) 분석 모듈

- 누적 최고점 대비 낙폭 시계열 (underwater)
- 낙폭 구간 식별 (시작 → 최저점 → 회복)
- 최대 낙폭, 평균 낙폭, 최장 기간, 평균 회복 기간, 최악 5개 구간
"""

from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd


@dataclass(frozen=True)
class DrawdownPeriod:
    """
    낙폭 구간

    Attributes:
        start_date: 낙폭이 처음 음수가 된 날
        trough_date: 최저점 날짜
        recovery_date: 직전 고점 회복일 (미회복 시 None)
        peak_value: 직전 고점 가치
        trough_value: 최저점 가치
        depth: 최저점 낙폭 (음수 소수, 예: -0.12 = -12%)
        duration: 구간 길이 (거래일, 미회복 구간은 마지막 날까지)
        recovery_days: 시작일 → 회복일 거래일 수 (미회복 시 None)
    """
    start_date: date
    trough_date: date
    recovery_date: Optional[date]
    peak_value: float
    trough_value: float
    depth: float
    duration: int
    recovery_days: Optional[int]

    @property
    def recovered(self) -> bool:
        return self.recovery_date is not None

    def to_dict(self) -> dict:
        return {
            'start_date': self.start_date,
            'trough_date': self.trough_date,
            'recovery_date': self.recovery_date,
            'peak_value': self.peak_value,
            'trough_value': self.trough_value,
            'depth': self.depth,
            'duration': self.duration,
            'recovery_days': self.recovery_days,
        }


@dataclass(frozen=True)
class DrawdownReport:
    """낙폭 분석 결과 (읽기 전용)"""
    max_drawdown: float
    average_drawdown: float
    max_drawdown_duration: int
    average_recovery_time: float
    drawdown_frequency: int
    periods: Tuple[DrawdownPeriod, ...] = ()
    worst_drawdowns: Tuple[DrawdownPeriod, ...] = ()
    underwater: pd.Series = field(default_factory=lambda: pd.Series(dtype=float), compare=False)

    def to_dict(self) -> dict:
        return {
            'max_drawdown': self.max_drawdown,
            'average_drawdown': self.average_drawdown,
            'max_drawdown_duration': self.max_drawdown_duration,
            'average_recovery_time': self.average_recovery_time,
            'drawdown_frequency': self.drawdown_frequency,
            'worst_drawdowns': [p.to_dict() for p in self.worst_drawdowns],
        }


class DrawdownAnalyzer:
    """낙폭 분석기"""

    def __init__(self, dates: Sequence[date], values: Sequence[float]):
        """
        Args:
            dates: 평가일 (오름차순)
            values: 일별 포트폴리오 가치
        """
        if len(dates) != len(values):
            raise ValueError(f"dates/values length mismatch: {len(dates)} != {len(values)}")
        self.dates = list(dates)
        self.values = np.asarray([float(v) for v in values], dtype=float)

    @classmethod
    def from_history(cls, history) -> 'DrawdownAnalyzer':
        """Snapshot 리스트로부터 생성"""
        return cls([s.date for s in history], [s.total_value for s in history])

    def drawdown_series(self) -> np.ndarray:
        """drawdown[t] = (v[t] - peak[t]) / peak[t]"""
        if len(self.values) == 0:
            return np.empty(0)
        peaks = np.maximum.accumulate(self.values)
        return np.where(peaks > 0, (self.values - peaks) / peaks, 0.0)

    def underwater(self) -> pd.Series:
        """date → drawdown"""
        return pd.Series(self.drawdown_series(), index=self.dates, name='drawdown')

    def identify_periods(self) -> List[DrawdownPeriod]:
        """
        낙폭 구간 식별

        고점 이후 처음 낙폭이 음수가 된 날 시작, 가치가 고점 이상이 되는 첫날 회복
        """
        drawdowns = self.drawdown_series()
        peaks = np.maximum.accumulate(self.values) if len(self.values) else self.values
        periods = []
        n = len(drawdowns)
        i = 0

        while i < n:
            if drawdowns[i] >= 0:
                i += 1
                continue

            start = i
            peak_value = peaks[start]
            trough = start
            j = start
            while j < n and self.values[j] < peak_value:
                if drawdowns[j] < drawdowns[trough]:
                    trough = j
                j += 1

            recovered = j < n
            periods.append(DrawdownPeriod(
                start_date=self.dates[start],
                trough_date=self.dates[trough],
                recovery_date=self.dates[j] if recovered else None,
                peak_value=float(peak_value),
                trough_value=float(self.values[trough]),
                depth=float(drawdowns[trough]),
                duration=(j - start) if recovered else (n - start),
                recovery_days=(j - start) if recovered else None,
            ))
            i = j

        return periods

    def analyze(self, worst_n: int = 5) -> DrawdownReport:
        """
        낙폭 종합 분석

        Args:
            worst_n: 최악 구간 개수 (기본 5)
        """
        drawdowns = self.drawdown_series()
        if len(drawdowns) == 0:
            return DrawdownReport(0.0, 0.0, 0, 0.0, 0)

        periods = self.identify_periods()
        negative = drawdowns[drawdowns < 0]
        recovered = [p.recovery_days for p in periods if p.recovered]

        return DrawdownReport(
            max_drawdown=float(min(drawdowns.min(), 0.0)),
            average_drawdown=float(negative.mean()) if len(negative) else 0.0,
            max_drawdown_duration=max((p.duration for p in periods), default=0),
            average_recovery_time=float(np.mean(recovered)) if recovered else 0.0,
            drawdown_frequency=len(periods),
            periods=tuple(periods),
            worst_drawdowns=tuple(sorted(periods, key=lambda p: p.depth)[:worst_n]),
            underwater=self.underwater(),
        )


def analyze_drawdowns(history, worst_n: int = 5) -> DrawdownReport:
    """Snapshot 리스트 낙폭 분석"""
    return DrawdownAnalyzer.from_history(history).analyze(worst_n=worst_n)
