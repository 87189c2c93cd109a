"""
백테스트 성과 분석 모듈

PerformanceMetrics 클래스:
- 전체 성과 (누적/연환산 수익률, 변동성, 승률, Profit Factor)
- 리스크 지표 (샤프, 소르티노, 칼마, VaR/CVaR, 왜도/첨도, 안정성)
- 벤치마크 비교 (베타, 알파, 정보 비율)
- 거래 활동 분석 (TradeReport)

표준편차는 모표준편차(ddof=0), 연환산 상수는 252 거래일.
분모가 0인 지표는 NaN/inf 대신 0을 반환한다 (profit_factor 의 inf 제외).
"""

from collections import Counter
from dataclasses import asdict, dataclass, field
from typing import Dict, List, Optional

import numpy as np
import pandas as pd
from scipy import stats

from .drawdown import DrawdownAnalyzer
from .portfolio import BUY, SELL, SkippedOrder, Snapshot, Trade

TRADING_DAYS = 252

# 부동소수 오차로 생기는 0에 가까운 분산 처리
_EPS = 1e-12


@dataclass(frozen=True)
class PerformanceReport:
    """성과 요약 (읽기 전용)"""
    total_return: float
    annualized_return: float
    volatility: float
    sharpe_ratio: float
    max_drawdown: float
    calmar_ratio: float
    win_rate: float
    profit_factor: float
    total_trades: int
    final_value: float
    trading_days: int
    beta: Optional[float] = None
    alpha: Optional[float] = None
    information_ratio: Optional[float] = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class RiskReport:
    """리스크 지표 (읽기 전용)"""
    var_95: float
    var_99: float
    cvar_95: float
    cvar_99: float
    skewness: float
    kurtosis: float
    downside_deviation: float
    sortino_ratio: float
    tail_ratio: float
    stability: float

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class TradeReport:
    """거래 활동 요약 (읽기 전용)"""
    total_trades: int
    buy_trades: int
    sell_trades: int
    skipped_orders: int
    skipped_by_reason: Dict[str, int] = field(default_factory=dict)
    total_commission: float = 0.0
    total_slippage: float = 0.0
    turnover: float = 0.0
    average_trade_value: float = 0.0
    max_consecutive_losses: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


def _safe_ratio(numerator: float, denominator: float) -> float:
    if abs(denominator) < _EPS:
        return 0.0
    return float(numerator / denominator)


class PerformanceMetrics:
    """백테스트 성과 분석 클래스"""

    def __init__(self, history: List[Snapshot], trades: List[Trade],
                 benchmark_values: Optional[pd.Series] = None,
                 risk_free_rate: float = 0.0,
                 skipped_orders: Optional[List[SkippedOrder]] = None):
        """
        초기화

        Args:
            history: 일별 Snapshot 리스트
            trades: 체결 거래 리스트
            benchmark_values: 벤치마크 가치 (index: date, 선택)
            risk_free_rate: 무위험 수익률 (연율)
            skipped_orders: 미체결 주문 리스트 (TradeReport 용)
        """
        self.history = list(history)
        self.trades = list(trades)
        self.skipped_orders = list(skipped_orders or [])
        self.risk_free_rate = risk_free_rate
        self.benchmark_values = benchmark_values

        self.dates = [s.date for s in self.history]
        self.values = np.array([float(s.total_value) for s in self.history], dtype=float)

        # 일별 수익률
        if len(self.values) >= 2:
            self.returns = self.values[1:] / self.values[:-1] - 1
        else:
            self.returns = np.empty(0)

        self._daily_rf = risk_free_rate / TRADING_DAYS
        self._drawdown = DrawdownAnalyzer(self.dates, self.values)

    @property
    def closed_trades(self) -> List[Trade]:
        """실현 손익이 있는 거래 (매도)"""
        return [t for t in self.trades if t.action == SELL and t.realized_pnl is not None]

    # ============================================================================
    # 1. 전체 성과 메트릭
    # ============================================================================

    def total_return(self) -> float:
        """
        누적 수익률 (소수)

        Returns:
            누적 수익률 (예: 0.342 = +34.2%)
        """
        if len(self.values) < 2 or self.values[0] == 0:
            return 0.0
        return float(self.values[-1] / self.values[0] - 1)

    def annualized_return(self) -> float:
        """(1 + total_return)^(252/N) - 1, N = 일별 수익률 개수"""
        n = len(self.returns)
        if n == 0:
            return 0.0
        return float((1 + self.total_return()) ** (TRADING_DAYS / n) - 1)

    def volatility(self) -> float:
        """연변동성 = std × √252"""
        if len(self.returns) == 0:
            return 0.0
        return float(self.returns.std() * np.sqrt(TRADING_DAYS))

    def win_rate(self) -> float:
        """
        승률 (수익 청산 거래 / 전체 청산 거래)

        Returns:
            승률 (예: 0.586)
        """
        closed = self.closed_trades
        if not closed:
            return 0.0
        wins = sum(1 for t in closed if t.realized_pnl > 0)
        return wins / len(closed)

    def profit_factor(self) -> float:
        """
        Profit Factor (총 이익 / 총 손실)

        Returns:
            손실이 0이고 이익이 있으면 inf, 이익이 없으면 0
        """
        closed = self.closed_trades
        total_profit = float(sum(t.realized_pnl for t in closed if t.realized_pnl > 0))
        total_loss = abs(float(sum(t.realized_pnl for t in closed if t.realized_pnl <= 0)))

        if total_profit == 0:
            return 0.0
        if total_loss == 0:
            return float('inf')
        return total_profit / total_loss

    # ============================================================================
    # 2. 리스크 지표
    # ============================================================================

    def max_drawdown(self) -> float:
        """최대 낙폭 (음수 소수, 낙폭 없으면 0)"""
        drawdowns = self._drawdown.drawdown_series()
        if len(drawdowns) == 0:
            return 0.0
        return float(min(drawdowns.min(), 0.0))

    def sharpe_ratio(self) -> float:
        """
        샤프 비율 (연환산)

        Sharpe = mean(r - rf/252) / std(r - rf/252) × √252
        """
        if len(self.returns) == 0:
            return 0.0
        excess = self.returns - self._daily_rf
        return float(_safe_ratio(excess.mean(), excess.std()) * np.sqrt(TRADING_DAYS))

    def calmar_ratio(self) -> float:
        """칼마 비율 = 연환산 수익률 / |MDD|"""
        return _safe_ratio(self.annualized_return(), abs(self.max_drawdown()))

    def value_at_risk(self, level: float) -> float:
        """
        VaR (역사적 시뮬레이션)

        Args:
            level: 꼬리 확률 (예: 0.05 → 95% VaR)

        Returns:
            level 분위 수익률 (선형 보간, 손실이면 음수)
        """
        if len(self.returns) == 0:
            return 0.0
        return float(np.quantile(self.returns, level))

    def conditional_value_at_risk(self, level: float) -> float:
        """CVaR = VaR 이하 수익률의 평균"""
        if len(self.returns) == 0:
            return 0.0
        var = self.value_at_risk(level)
        tail = self.returns[self.returns <= var]
        return float(tail.mean()) if len(tail) else var

    def skewness(self) -> float:
        """왜도 (모집단 적률 기준)"""
        if len(self.returns) == 0:
            return 0.0
        std = self.returns.std()
        if std < _EPS:
            return 0.0
        return float(stats.skew(self.returns))

    def kurtosis(self) -> float:
        """초과 첨도 (정규분포 = 0)"""
        if len(self.returns) == 0:
            return 0.0
        std = self.returns.std()
        if std < _EPS:
            return 0.0
        return float(stats.kurtosis(self.returns))  # Fisher

    def downside_deviation(self) -> float:
        """하방 편차 (연환산, 무위험 수익률 미만만)"""
        if len(self.returns) == 0:
            return 0.0
        shortfall = np.minimum(self.returns - self._daily_rf, 0.0)
        return float(np.sqrt(np.mean(shortfall ** 2)) * np.sqrt(TRADING_DAYS))

    def sortino_ratio(self) -> float:
        """소르티노 비율 = 연환산 초과수익 / 하방 편차"""
        if len(self.returns) == 0:
            return 0.0
        excess = (self.returns - self._daily_rf).mean() * TRADING_DAYS
        return _safe_ratio(excess, self.downside_deviation())

    def tail_ratio(self) -> float:
        """|95 분위| / |5 분위|"""
        if len(self.returns) == 0:
            return 0.0
        return _safe_ratio(abs(np.quantile(self.returns, 0.95)),
                           abs(np.quantile(self.returns, 0.05)))

    def stability(self) -> float:
        """누적 로그수익률 선형 회귀 R²"""
        if len(self.returns) < 2:
            return 0.0
        cumulative = np.cumsum(np.log1p(self.returns))
        x = np.arange(len(cumulative), dtype=float)
        if cumulative.std() < _EPS:
            return 0.0
        r = np.corrcoef(x, cumulative)[0, 1]
        return 0.0 if np.isnan(r) else float(r ** 2)

    def max_consecutive_losses(self) -> int:
        """
        최대 연속 손실 횟수 (청산 거래 기준)

        Returns:
            최대 연속 손실 횟수 (예: 5)
        """
        max_streak = 0
        current_streak = 0

        for trade in self.closed_trades:
            if trade.realized_pnl <= 0:
                current_streak += 1
                max_streak = max(max_streak, current_streak)
            else:
                current_streak = 0

        return max_streak

    # ============================================================================
    # 3. 벤치마크 비교
    # ============================================================================

    def _paired_returns(self):
        """(전략 수익률, 벤치마크 수익률) 공통 날짜 정렬"""
        bench = self.benchmark_values.reindex(self.dates).astype(float).to_numpy()
        pairs = [
            (self.returns[i - 1], bench[i] / bench[i - 1] - 1)
            for i in range(1, len(self.dates))
            if not np.isnan(bench[i]) and not np.isnan(bench[i - 1]) and bench[i - 1] != 0
        ]
        if not pairs:
            return np.empty(0), np.empty(0)
        r, b = zip(*pairs)
        return np.array(r), np.array(b)

    def _has_benchmark(self) -> bool:
        return self.benchmark_values is not None and not self.benchmark_values.empty

    def beta(self) -> Optional[float]:
        """
        베타 (시장 민감도)

        Beta = Cov(전략 수익률, 벤치마크 수익률) / Var(벤치마크 수익률)

        Returns:
            베타 또는 None (벤치마크 없으면)
        """
        if not self._has_benchmark():
            return None
        r, b = self._paired_returns()
        if len(r) == 0:
            return 0.0
        covariance = np.mean((r - r.mean()) * (b - b.mean()))
        return _safe_ratio(covariance, b.var())

    def alpha(self) -> Optional[float]:
        """
        알파 (일별)

        alpha = mean(r) - rf/252 - beta × (mean(b) - rf/252)
        """
        if not self._has_benchmark():
            return None
        r, b = self._paired_returns()
        if len(r) == 0:
            return 0.0
        beta = self.beta()
        return float(r.mean() - self._daily_rf - beta * (b.mean() - self._daily_rf))

    def information_ratio(self) -> Optional[float]:
        """정보 비율 = mean(r - b) / std(r - b)"""
        if not self._has_benchmark():
            return None
        r, b = self._paired_returns()
        if len(r) == 0:
            return 0.0
        active = r - b
        return _safe_ratio(active.mean(), active.std())

    # ============================================================================
    # 4. 종합 리포트
    # ============================================================================

    def performance_report(self) -> PerformanceReport:
        return PerformanceReport(
            total_return=self.total_return(),
            annualized_return=self.annualized_return(),
            volatility=self.volatility(),
            sharpe_ratio=self.sharpe_ratio(),
            max_drawdown=self.max_drawdown(),
            calmar_ratio=self.calmar_ratio(),
            win_rate=self.win_rate(),
            profit_factor=self.profit_factor(),
            total_trades=len(self.trades),
            final_value=float(self.values[-1]) if len(self.values) else 0.0,
            trading_days=len(self.values),
            beta=self.beta(),
            alpha=self.alpha(),
            information_ratio=self.information_ratio(),
        )

    def risk_report(self) -> RiskReport:
        return RiskReport(
            var_95=self.value_at_risk(0.05),
            var_99=self.value_at_risk(0.01),
            cvar_95=self.conditional_value_at_risk(0.05),
            cvar_99=self.conditional_value_at_risk(0.01),
            skewness=self.skewness(),
            kurtosis=self.kurtosis(),
            downside_deviation=self.downside_deviation(),
            sortino_ratio=self.sortino_ratio(),
            tail_ratio=self.tail_ratio(),
            stability=self.stability(),
        )

    def trade_report(self) -> TradeReport:
        gross = [float(t.gross_value) for t in self.trades]
        mean_value = float(self.values.mean()) if len(self.values) else 0.0
        return TradeReport(
            total_trades=len(self.trades),
            buy_trades=sum(1 for t in self.trades if t.action == BUY),
            sell_trades=sum(1 for t in self.trades if t.action == SELL),
            skipped_orders=len(self.skipped_orders),
            skipped_by_reason=dict(sorted(Counter(s.reason for s in self.skipped_orders).items())),
            total_commission=float(sum(t.commission for t in self.trades)),
            total_slippage=float(sum(t.slippage for t in self.trades)),
            turnover=_safe_ratio(sum(gross), mean_value),
            average_trade_value=float(np.mean(gross)) if gross else 0.0,
            max_consecutive_losses=self.max_consecutive_losses(),
        )

    def summary(self) -> Dict:
        """
        종합 성과 요약

        Returns:
            Dict: 성과 + 리스크 + 거래 활동 지표
        """
        result = self.performance_report().to_dict()
        result.update(self.risk_report().to_dict())
        result['max_consecutive_losses'] = self.max_consecutive_losses()
        return result


def compute_metrics(history: List[Snapshot], trades: List[Trade],
                    benchmark_values: Optional[pd.Series] = None,
                    risk_free_rate: float = 0.0) -> PerformanceReport:
    """성과 지표 계산"""
    return PerformanceMetrics(history, trades, benchmark_values, risk_free_rate).performance_report()


def compute_risk_metrics(history: List[Snapshot], risk_free_rate: float = 0.0) -> RiskReport:
    """리스크 지표 계산"""
    return PerformanceMetrics(history, [], risk_free_rate=risk_free_rate).risk_report()


def compute_trade_report(history: List[Snapshot], trades: List[Trade],
                         skipped_orders: Optional[List[SkippedOrder]] = None) -> TradeReport:
    """거래 활동 요약"""
    return PerformanceMetrics(history, trades, skipped_orders=skipped_orders).trade_report()
