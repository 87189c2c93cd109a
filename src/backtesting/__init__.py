"""
백테스팅 모듈

포트폴리오 백테스트 및 리스크 분석 엔진
- BacktestEngine: 일별 순차 시뮬레이션
- Portfolio: 현금/보유/이력 관리
- SignalGenerator: 전략별 시그널 (momentum, mean_reversion, buy_and_hold, smart_beta)
- TradeExecutor: 비용 반영 체결
- PerformanceMetrics: 성과/리스크 분석
- DrawdownAnalyzer: 낙폭 분석
- MarketDataPrecomputer: 사전 계산 (속도 최적화)
"""

from .errors import BacktestError, ConfigurationError, PriceDataError
from .portfolio import Holding, Snapshot, Trade, SkippedOrder, Portfolio
from .signals import (
    Signal, Strategy, SignalContext, SignalGenerator, STRATEGY_REGISTRY, register_strategy,
    FactorScoreProvider, StaticFactorScores, FrameFactorScores, weighted_sum,
    create_signal_generator,
)
from .execution import CostModel, ExecutionPolicy, TradeExecutor
from .precomputer import MarketData, MarketDataPrecomputer
from .engine import (
    BacktestConfig, BacktestEngine, BacktestResult, BacktestRequest,
    run_backtest, run_request, should_rebalance,
)
from .metrics import (
    PerformanceMetrics, PerformanceReport, RiskReport, TradeReport,
    compute_metrics, compute_risk_metrics, compute_trade_report,
)
from .drawdown import DrawdownAnalyzer, DrawdownPeriod, DrawdownReport, analyze_drawdowns
from .parallel import BacktestJob, run_backtests

__all__ = [
    'BacktestError',
    'ConfigurationError',
    'PriceDataError',
    'Holding',
    'Snapshot',
    'Trade',
    'SkippedOrder',
    'Portfolio',
    'Signal',
    'Strategy',
    'SignalContext',
    'SignalGenerator',
    'STRATEGY_REGISTRY',
    'register_strategy',
    'FactorScoreProvider',
    'StaticFactorScores',
    'FrameFactorScores',
    'weighted_sum',
    'create_signal_generator',
    'CostModel',
    'ExecutionPolicy',
    'TradeExecutor',
    'MarketData',
    'MarketDataPrecomputer',
    'BacktestConfig',
    'BacktestEngine',
    'BacktestResult',
    'BacktestRequest',
    'run_backtest',
    'run_request',
    'should_rebalance',
    'PerformanceMetrics',
    'PerformanceReport',
    'RiskReport',
    'TradeReport',
    'compute_metrics',
    'compute_risk_metrics',
    'compute_trade_report',
    'DrawdownAnalyzer',
    'DrawdownPeriod',
    'DrawdownReport',
    'analyze_drawdowns',
    'BacktestJob',
    'run_backtests',
]
