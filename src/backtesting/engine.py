"""
백테스트 엔진 모듈

일별 순차 시뮬레이션 구현:
- 보유 자산 평가 후 Snapshot 기록
- 리밸런싱 주기 판단
- 시그널 생성 (당일까지의 가격만 사용, 미래 데이터 차단)
- 주문 체결 (수수료/슬리피지 반영)
- 성과/리스크/낙폭 분석
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import pandas as pd

from .drawdown import DrawdownReport, analyze_drawdowns
from .errors import ConfigurationError
from .execution import CostModel, ExecutionPolicy, TradeExecutor
from .metrics import PerformanceMetrics, PerformanceReport, RiskReport, TradeReport
from .portfolio import Portfolio, SkippedOrder, Snapshot, Trade
from .precomputer import MarketData, MarketDataPrecomputer
from .signals import (
    REBALANCE_FREQUENCIES, SignalContext, Strategy, create_signal_generator,
)
from src.utils import parse_date, validate_asset_id

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]


def should_rebalance(trade_date: date, frequency: str, last_rebalance: Optional[date]) -> bool:
    """
    리밸런싱 여부 판단

    Args:
        trade_date: 현재 거래일
        frequency: 'daily', 'weekly', 'monthly', 'quarterly'
        last_rebalance: 마지막 리밸런싱일 (없으면 None → 항상 True)

    Returns:
        리밸런싱 필요 여부
    """
    if last_rebalance is None:
        return True

    if frequency == 'daily':
        return True
    if frequency == 'weekly':
        return (trade_date - last_rebalance).days >= 7
    if frequency == 'monthly':
        return (trade_date.year, trade_date.month) != (last_rebalance.year, last_rebalance.month)
    if frequency == 'quarterly':
        quarter = (trade_date.month - 1) // 3
        last_quarter = (last_rebalance.month - 1) // 3
        return (trade_date.year, quarter) != (last_rebalance.year, last_quarter)

    raise ConfigurationError(f"unknown rebalance frequency: {frequency!r}")


def parse_config_date(value, name: str) -> Optional[date]:
    """설정 날짜 변환 (None 허용, 형식 오류는 ConfigurationError)"""
    if value is None:
        return None
    try:
        return parse_date(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"invalid {name}: {value!r} (expected YYYY-MM-DD)") from e


def _to_strategy(strategy: Union[Strategy, Dict[str, Any]]) -> Strategy:
    if isinstance(strategy, Strategy):
        return strategy
    if isinstance(strategy, dict):
        try:
            return Strategy(**strategy)
        except TypeError as e:
            raise ConfigurationError(f"invalid strategy definition: {e}") from e
    raise ConfigurationError(f"strategy must be a Strategy or dict, got: {type(strategy).__name__}")


class BacktestConfig:
    """백테스트 설정"""

    def __init__(self,
                 strategy: Union[Strategy, Dict[str, Any]],
                 initial_capital: float = 100_000,  # 초기 자본금
                 cost_model: Optional[CostModel] = None,  # 수수료 2%, 슬리피지 0.5%
                 execution_policy: Optional[ExecutionPolicy] = None,  # 매수 10%, 매도 50%
                 risk_free_rate: float = 0.0,  # 무위험 수익률 (연율)
                 benchmark_asset_id: Optional[str] = None,  # 벤치마크 자산
                 start_date: Optional[Union[str, date]] = None,
                 end_date: Optional[Union[str, date]] = None,
                 include_transaction_costs: bool = True,
                 include_risk_metrics: bool = True,
                 include_drawdown_analysis: bool = True):
        """
        백테스트 설정 초기화

        Args:
            strategy: Strategy 또는 {'type', 'universe', 'parameters', 'rebalance_frequency'} dict
            initial_capital: 초기 자본금 (> 0)
            cost_model: 거래 비용 모델 (None이면 기본값)
            execution_policy: 주문 수량 규칙 (None이면 기본값)
            risk_free_rate: 무위험 수익률 (연율, 예: 0.03 = 3%)
            benchmark_asset_id: 벤치마크 자산 ID (매수 후 보유 곡선)
            start_date: 시뮬레이션 시작일 (None이면 데이터 처음부터)
            end_date: 시뮬레이션 종료일 (None이면 데이터 끝까지)
            include_transaction_costs: False이면 비용 0으로 체결
            include_risk_metrics: RiskReport 계산 여부
            include_drawdown_analysis: DrawdownReport 계산 여부

        Raises:
            ConfigurationError: 유효하지 않은 설정값
        """
        self.strategy = _to_strategy(strategy)
        self.initial_capital = initial_capital
        self.cost_model = cost_model or CostModel()
        self.execution_policy = execution_policy or ExecutionPolicy()
        self.risk_free_rate = risk_free_rate
        self.benchmark_asset_id = benchmark_asset_id
        self.start_date = parse_config_date(start_date, 'start_date')
        self.end_date = parse_config_date(end_date, 'end_date')
        self.include_transaction_costs = include_transaction_costs
        self.include_risk_metrics = include_risk_metrics
        self.include_drawdown_analysis = include_drawdown_analysis

        self._validate()

    def _validate(self) -> None:
        if not isinstance(self.initial_capital, (int, float, Decimal)) or self.initial_capital <= 0:
            raise ConfigurationError(f"initial_capital must be positive, got: {self.initial_capital}")

        universe = self.strategy.universe
        if not universe:
            raise ConfigurationError("strategy universe must not be empty")
        invalid = [a for a in universe if not validate_asset_id(a)]
        if invalid:
            raise ConfigurationError(f"invalid asset ids in universe: {invalid}")

        frequency = self.strategy.rebalance_frequency
        if frequency not in REBALANCE_FREQUENCIES:
            raise ConfigurationError(
                f"rebalance_frequency must be one of {REBALANCE_FREQUENCIES}, got: {frequency!r}"
            )

        if self.strategy.lookback < 1:
            raise ConfigurationError(f"lookback must be >= 1, got: {self.strategy.lookback}")
        if self.strategy.threshold < 0:
            raise ConfigurationError(f"threshold must be >= 0, got: {self.strategy.threshold}")

        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ConfigurationError(f"start_date {self.start_date} is after end_date {self.end_date}")

    def to_kwargs(self) -> Dict[str, Any]:
        """생성자 인자 딕셔너리 (pickle/복제용)"""
        return {
            'strategy': self.strategy,
            'initial_capital': self.initial_capital,
            'cost_model': self.cost_model,
            'execution_policy': self.execution_policy,
            'risk_free_rate': self.risk_free_rate,
            'benchmark_asset_id': self.benchmark_asset_id,
            'start_date': self.start_date,
            'end_date': self.end_date,
            'include_transaction_costs': self.include_transaction_costs,
            'include_risk_metrics': self.include_risk_metrics,
            'include_drawdown_analysis': self.include_drawdown_analysis,
        }

    def replace(self, **overrides) -> 'BacktestConfig':
        """일부 값을 바꾼 새 설정 (검증 다시 수행)"""
        kwargs = self.to_kwargs()
        kwargs.update(overrides)
        return BacktestConfig(**kwargs)

    @property
    def effective_cost_model(self) -> CostModel:
        return self.cost_model if self.include_transaction_costs else CostModel.zero()

    @classmethod
    def from_dict(cls, config: Dict[str, Any],
                  strategy: Union[Strategy, Dict[str, Any]]) -> 'BacktestConfig':
        """
        load_config() 결과로부터 생성

        Args:
            config: src.config.load_config() 반환값
            strategy: 전략 (parameters 미지정 항목은 config['strategies'] 기본값 사용)
        """
        strategy = _to_strategy(strategy)
        defaults = config.get('strategies', {}).get(strategy.type, {})
        params = dict(defaults)
        params.update(strategy.parameters)
        strategy = strategy.with_parameters(**params)

        backtest = config.get('backtest', {})
        costs = config.get('costs', {})
        execution = config.get('execution', {})
        return cls(
            strategy=strategy,
            initial_capital=backtest.get('initial_capital', 100_000),
            cost_model=CostModel(
                commission_rate=costs.get('commission_rate', 0.02),
                slippage_rate=costs.get('slippage_rate', 0.005),
            ),
            execution_policy=ExecutionPolicy(
                buy_fraction=execution.get('buy_fraction', 0.10),
                sell_fraction=execution.get('sell_fraction', 0.50),
                fixed_buy_notional=execution.get('fixed_buy_notional'),
            ),
            risk_free_rate=backtest.get('risk_free_rate', 0.0),
            benchmark_asset_id=backtest.get('benchmark_asset_id'),
            start_date=backtest.get('start_date'),
            end_date=backtest.get('end_date'),
            include_transaction_costs=costs.get('include_transaction_costs', True),
            include_risk_metrics=backtest.get('include_risk_metrics', True),
            include_drawdown_analysis=backtest.get('include_drawdown_analysis', True),
        )


@dataclass
class BacktestResult:
    """백테스트 결과"""
    portfolio: Portfolio
    config: BacktestConfig
    performance: PerformanceReport
    trade_report: TradeReport
    risk: Optional[RiskReport] = None
    drawdown: Optional[DrawdownReport] = None
    benchmark_history: Optional[pd.Series] = None
    cancelled: bool = False

    @property
    def history(self) -> List[Snapshot]:
        return self.portfolio.history

    @property
    def trades(self) -> List[Trade]:
        return self.portfolio.trades

    @property
    def skipped_orders(self) -> List[SkippedOrder]:
        return self.portfolio.skipped_orders

    def daily_values(self) -> pd.DataFrame:
        """일별 포트폴리오 가치 DataFrame (date, value, cash, position_count, total_trades)"""
        return self.portfolio.history_frame()

    def summary(self) -> Dict[str, Any]:
        result = {
            'strategy': self.config.strategy.name,
            'initial_capital': float(self.portfolio.initial_capital),
            'cancelled': self.cancelled,
        }
        result.update(self.performance.to_dict())
        if self.risk is not None:
            result.update(self.risk.to_dict())
        if self.drawdown is not None:
            result['max_drawdown_duration'] = self.drawdown.max_drawdown_duration
            result['drawdown_frequency'] = self.drawdown.drawdown_frequency
        result['skipped_orders'] = self.trade_report.skipped_orders
        return result


class BacktestEngine:
    """백테스트 엔진"""

    def __init__(self, config: BacktestConfig, price_data: Dict[str, pd.DataFrame],
                 factor_provider=None, weighting=None,
                 precomputed: Optional[MarketData] = None):
        """
        초기화

        Args:
            config: 백테스트 설정
            price_data: asset_id → 가격 DataFrame (date, price[, volume])
            factor_provider: smart_beta 전략용 FactorScoreProvider
            weighting: smart_beta 가중 방식 (None이면 weighted_sum)
            precomputed: 외부에서 사전 계산한 MarketData (최적화 Trial 간 공유)
                거래일은 config 의 start_date/end_date 로 다시 필터링
        """
        self.config = config
        self.price_data = price_data
        self.strategy = config.strategy
        self._precomputed = precomputed

        benchmark = config.benchmark_asset_id
        if benchmark is not None and benchmark not in price_data:
            raise ConfigurationError(f"benchmark asset {benchmark!r} has no price series")

        generator_kwargs = {}
        if factor_provider is not None:
            generator_kwargs['factor_provider'] = factor_provider
        if weighting is not None:
            generator_kwargs['weighting'] = weighting
        self._generator_kwargs = generator_kwargs

        self.executor = TradeExecutor(config.effective_cost_model, config.execution_policy)
        self.portfolio: Optional[Portfolio] = None
        self._market: Optional[MarketData] = None

    def _prepare_market(self, verbose: bool) -> MarketData:
        if self._precomputed is None:
            extra = [self.config.benchmark_asset_id] if self.config.benchmark_asset_id else []
            pc = MarketDataPrecomputer(self.price_data, self.strategy.universe, extra_assets=extra)
            return pc.precompute(self.config.start_date, self.config.end_date, verbose=verbose)

        # 윈도우는 당일까지만 보므로 넓은 범위 사전 계산을 재사용해도 미래 누수 없음
        start, end = self.config.start_date, self.config.end_date
        shared = self._precomputed
        dates = [d for d in shared.trading_dates
                 if (start is None or d >= start) and (end is None or d <= end)]
        return MarketData(
            trading_dates=dates,
            price_lookup=shared.price_lookup,
            price_arrays=shared.price_arrays,
            date_index=shared.date_index,
            quotes_by_date=shared.quotes_by_date,
            dates_by_asset=shared.dates_by_asset,
        )

    def _notify(self, progress_callback: Optional[ProgressCallback], pct: float) -> None:
        if progress_callback is None:
            return
        try:
            progress_callback(pct)
        except Exception:
            logger.exception("progress callback failed at %.1f%%", pct)

    def run(self, progress_callback: Optional[ProgressCallback] = None,
            cancel_event=None, verbose: bool = False) -> BacktestResult:
        """
        백테스트 실행

        Args:
            progress_callback: 진행률 통지 함수 (0~100, 단조 증가)
            cancel_event: is_set() 을 가진 객체 (예: threading.Event), 거래일마다 확인
            verbose: 진행 상황 출력 여부

        Returns:
            BacktestResult

        Raises:
            PriceDataError: 가격 시계열 검증 실패
            ConfigurationError: 시뮬레이션할 거래일이 없음
        """
        market = self._prepare_market(verbose)
        self._market = market
        trading_dates = market.trading_dates

        if not trading_dates:
            raise ConfigurationError(
                f"no trading days for universe {self.strategy.universe} "
                f"({self.config.start_date} ~ {self.config.end_date})"
            )

        portfolio = Portfolio(self.config.initial_capital)
        self.portfolio = portfolio
        generator = create_signal_generator(self.strategy, **self._generator_kwargs)
        frequency = self.strategy.rebalance_frequency
        last_prices: Dict[str, Decimal] = {}
        cancelled = False

        if verbose:
            print(f"\n{'='*80}")
            print(f"📈 백테스트 시작: {trading_dates[0]} ~ {trading_dates[-1]}")
            print(f"{'='*80}\n")
            print(f"전략: {self.strategy.name} ({self.strategy.type}, {frequency})")
            print(f"유니버스: {', '.join(self.strategy.universe)}")
            print(f"초기 자본금: {portfolio.initial_capital:,.0f}")
            print(f"\n시뮬레이션 시작...\n")

        self._notify(progress_callback, 0.0)
        total_days = len(trading_dates)

        for i, trade_date in enumerate(trading_dates):
            if cancel_event is not None and cancel_event.is_set():
                logger.info("Backtest cancelled before %s (%d/%d days)", trade_date, i, total_days)
                cancelled = True
                break

            # 1. 당일 시세 (없는 자산은 직전 가격으로 평가)
            quoting = market.quoting_assets(trade_date)
            today_prices = {a: market.quote(a, trade_date) for a in quoting}
            last_prices.update(today_prices)
            for asset_id in self.strategy.universe:
                if asset_id not in today_prices:
                    logger.debug("%s %s: no quote, skipped for the day", trade_date, asset_id)

            # 2. 평가 및 Snapshot 기록
            portfolio.mark_to_market(trade_date, last_prices)

            # 3. 리밸런싱 → 시그널 → 체결
            last_rebalance = portfolio.rebalance_dates[-1] if portfolio.rebalance_dates else None
            if should_rebalance(trade_date, frequency, last_rebalance):
                context = SignalContext(trade_date, market, portfolio, self.strategy.universe)
                signals = generator.generate_signals(context)
                if signals:
                    self.executor.execute(portfolio, signals, today_prices, trade_date)
                    portfolio.rebalance_dates.append(trade_date)

            self._notify(progress_callback, (i + 1) / total_days * 100)

            # 진행 상황 출력 (20일마다)
            if verbose and (i + 1) % 20 == 0:
                total_return = (portfolio.total_value / portfolio.initial_capital - 1) * 100
                print(f"[{trade_date}] 포트폴리오: {portfolio.total_value:,.0f} ({total_return:+.1f}%) | "
                      f"포지션: {portfolio.position_count} | 거래: {len(portfolio.trades)}건")

        result = self._build_result(portfolio, market, cancelled)

        if verbose:
            print(f"\n{'='*80}")
            print(f"✅ 백테스트 {'중단' if cancelled else '완료'}!")
            print(f"{'='*80}\n")
            print(f"최종 자본금: {portfolio.total_value:,.0f}")
            print(f"총 수익률: {result.performance.total_return * 100:+.2f}%")
            print(f"총 거래 횟수: {len(portfolio.trades)}건 (미체결 {len(portfolio.skipped_orders)}건)\n")

        return result

    def benchmark_curve(self, market: MarketData, dates: List[date]) -> Optional[pd.Series]:
        """
        벤치마크 매수 후 보유 곡선 (초기 자본금 기준, 거래일 샘플링)

        벤치마크 첫 시세 이전 날짜는 제외
        """
        asset_id = self.config.benchmark_asset_id
        if asset_id is None or not dates:
            return None

        prices = market.sample(asset_id, dates)
        base = next((p for p in prices if p is not None), None)
        if base is None:
            logger.warning("Benchmark %s has no quotes in the simulated range", asset_id)
            return pd.Series(dtype=float, name=asset_id)

        capital = float(self.config.initial_capital)
        points = {d: capital * float(p / base) for d, p in zip(dates, prices) if p is not None}
        return pd.Series(points, name=asset_id, dtype=float)

    def _build_result(self, portfolio: Portfolio, market: MarketData,
                      cancelled: bool) -> BacktestResult:
        dates = [s.date for s in portfolio.history]
        benchmark = self.benchmark_curve(market, dates)

        metrics = PerformanceMetrics(portfolio.history, portfolio.trades, benchmark,
                                     self.config.risk_free_rate, portfolio.skipped_orders)

        return BacktestResult(
            portfolio=portfolio,
            config=self.config,
            performance=metrics.performance_report(),
            trade_report=metrics.trade_report(),
            risk=metrics.risk_report() if self.config.include_risk_metrics else None,
            drawdown=analyze_drawdowns(portfolio.history) if self.config.include_drawdown_analysis else None,
            benchmark_history=benchmark,
            cancelled=cancelled,
        )


# ============================================================================
# 공개 진입점
# ============================================================================

_RUN_OPTIONS = ('progress_callback', 'cancel_event', 'verbose')
_ENGINE_OPTIONS = ('factor_provider', 'weighting')


def run_backtest(strategy: Union[Strategy, Dict[str, Any]],
                 price_data: Dict[str, pd.DataFrame],
                 initial_capital: float = 100_000,
                 options: Optional[Dict[str, Any]] = None,
                 **kwargs) -> BacktestResult:
    """
    백테스트 실행 (함수형 진입점)

    Args:
        strategy: Strategy 또는 dict
        price_data: asset_id → 가격 DataFrame
        initial_capital: 초기 자본금
        options: BacktestConfig 인자 + progress_callback, cancel_event, verbose,
                 factor_provider, weighting
        **kwargs: options 와 동일 (options 보다 우선)

    Raises:
        ConfigurationError: 설정 오류 (상태 생성 전)

    Example:
        result = run_backtest(
            {'type': 'momentum', 'universe': ['AAPL'], 'parameters': {'lookback': 20}},
            {'AAPL': df},
            options={'cost_model': CostModel(0.001, 0.0005)},
        )
    """
    merged = dict(options or {})
    merged.update(kwargs)

    run_kwargs = {k: merged.pop(k) for k in _RUN_OPTIONS if k in merged}
    engine_kwargs = {k: merged.pop(k) for k in _ENGINE_OPTIONS if k in merged}

    try:
        config = BacktestConfig(strategy, initial_capital=initial_capital, **merged)
    except TypeError as e:
        raise ConfigurationError(f"unknown backtest option: {e}") from e

    engine = BacktestEngine(config, price_data, **engine_kwargs)
    return engine.run(**run_kwargs)


@dataclass
class BacktestRequest:
    """
    백테스트 요청

    Args:
        strategy: Strategy 또는 dict
        universe: 유니버스 (None이면 strategy.universe)
        initial_capital: 초기 자본금
        cost_model: 거래 비용 모델
        date_range: (start_date, end_date)
        risk_free_rate: 무위험 수익률 (연율)
        benchmark_asset_id: 벤치마크 자산
        execution_policy: 주문 수량 규칙
    """
    strategy: Union[Strategy, Dict[str, Any]]
    date_range: Tuple[Union[str, date], Union[str, date]]
    universe: Optional[List[str]] = None
    initial_capital: float = 100_000
    cost_model: CostModel = field(default_factory=CostModel)
    risk_free_rate: float = 0.0
    benchmark_asset_id: Optional[str] = None
    execution_policy: ExecutionPolicy = field(default_factory=ExecutionPolicy)

    def resolved_strategy(self) -> Strategy:
        strategy = _to_strategy(self.strategy)
        if self.universe is not None:
            strategy = Strategy(type=strategy.type, universe=list(self.universe),
                                parameters=dict(strategy.parameters),
                                rebalance_frequency=strategy.rebalance_frequency,
                                name=strategy.name)
        return strategy


def run_request(request: BacktestRequest, provider, **options) -> BacktestResult:
    """
    요청 단위 백테스트 실행 (가격은 provider 에서 조회)

    Args:
        request: BacktestRequest
        provider: PriceSeriesProvider
        **options: progress_callback, cancel_event, verbose, factor_provider, weighting
    """
    strategy = request.resolved_strategy()
    start_date, end_date = request.date_range

    config = BacktestConfig(
        strategy,
        initial_capital=request.initial_capital,
        cost_model=request.cost_model,
        execution_policy=request.execution_policy,
        risk_free_rate=request.risk_free_rate,
        benchmark_asset_id=request.benchmark_asset_id,
        start_date=start_date,
        end_date=end_date,
    )

    asset_ids = list(strategy.universe)
    if request.benchmark_asset_id and request.benchmark_asset_id not in asset_ids:
        asset_ids.append(request.benchmark_asset_id)
    price_data = provider.get_price_data(asset_ids, config.start_date, config.end_date)

    engine_kwargs = {k: options.pop(k) for k in _ENGINE_OPTIONS if k in options}
    engine = BacktestEngine(config, price_data, **engine_kwargs)
    return engine.run(**options)
