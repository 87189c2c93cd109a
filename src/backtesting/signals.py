"""
시그널 생성 모듈

전략 타입별 SignalGenerator 구현:
- momentum: lookback 기간 수익률
- mean_reversion: lookback 기간 Z-Score
- buy_and_hold: 자산별 최초 1회 매수
- smart_beta: 팩터 점수 가중 합산

새 전략은 @register_strategy 로 클래스만 추가하면 된다.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Dict, List, Optional, Type

import numpy as np
import pandas as pd

from .errors import ConfigurationError
from .portfolio import BUY, SELL, Holding

logger = logging.getLogger(__name__)

# 상대 표준편차가 이 값 이하이면 분산 0으로 간주
_EPS = 1e-12

MOMENTUM = 'momentum'
MEAN_REVERSION = 'mean_reversion'
BUY_AND_HOLD = 'buy_and_hold'
SMART_BETA = 'smart_beta'

_TYPE_ALIASES = {
    'meanReversion': MEAN_REVERSION,
    'buyAndHold': BUY_AND_HOLD,
    'smartBeta': SMART_BETA,
}

REBALANCE_FREQUENCIES = ('daily', 'weekly', 'monthly', 'quarterly')


def normalize_strategy_type(strategy_type: str) -> str:
    """
    전략 타입 표준화 (camelCase 별칭 허용)

    Raises:
        ConfigurationError: 등록되지 않은 타입
    """
    name = _TYPE_ALIASES.get(strategy_type, strategy_type)
    if name not in STRATEGY_REGISTRY:
        raise ConfigurationError(
            f"unknown strategy type: {strategy_type!r} "
            f"(expected one of {sorted(STRATEGY_REGISTRY)})"
        )
    return name


@dataclass(frozen=True)
class Signal:
    """매매 시그널 (당일 실행 후 폐기)"""
    asset_id: str
    action: str  # 'buy' 또는 'sell'
    strength: float
    reason: str
    date: date


@dataclass
class Strategy:
    """
    전략 정의

    Args:
        type: 'momentum', 'mean_reversion', 'buy_and_hold', 'smart_beta'
        universe: 거래 대상 자산 ID 목록
        parameters: {'lookback': int, 'threshold': float, 'factor_weights': {factor: weight}}
        rebalance_frequency: 'daily', 'weekly', 'monthly', 'quarterly'
        name: 표시용 이름
    """
    type: str
    universe: List[str]
    parameters: Dict = field(default_factory=dict)
    rebalance_frequency: str = 'monthly'
    name: Optional[str] = None

    def __post_init__(self):
        self.type = normalize_strategy_type(self.type)
        if self.name is None:
            self.name = self.type

    @property
    def generator_class(self) -> Type['SignalGenerator']:
        return STRATEGY_REGISTRY[self.type]

    @property
    def lookback(self) -> int:
        return int(self.parameters.get('lookback', self.generator_class.default_lookback))

    @property
    def threshold(self) -> float:
        return float(self.parameters.get('threshold', self.generator_class.default_threshold))

    @property
    def factor_weights(self) -> Dict[str, float]:
        return dict(self.parameters.get('factor_weights') or {})

    def with_parameters(self, **overrides) -> 'Strategy':
        """파라미터 일부를 바꾼 사본 (최적화용)"""
        params = dict(self.parameters)
        params.update(overrides)
        return Strategy(type=self.type, universe=list(self.universe), parameters=params,
                        rebalance_frequency=self.rebalance_frequency, name=self.name)

    def to_dict(self) -> dict:
        return {
            'type': self.type,
            'universe': list(self.universe),
            'parameters': dict(self.parameters),
            'rebalance_frequency': self.rebalance_frequency,
            'name': self.name,
        }


class SignalContext:
    """
    시그널 생성 시점의 읽기 전용 시장/포트폴리오 뷰

    window()는 당일까지의 가격만 돌려주므로 미래 데이터가 새지 않는다.
    """

    def __init__(self, trade_date: date, market, portfolio, universe: List[str]):
        """
        Args:
            trade_date: 현재 거래일
            market: MarketData (precomputer)
            portfolio: Portfolio
            universe: 전략 유니버스
        """
        self.date = trade_date
        self._market = market
        self._portfolio = portfolio
        allowed = set(universe)
        # 당일 시세가 있는 유니버스 자산만
        self.assets = [a for a in market.quoting_assets(trade_date) if a in allowed]

    def window(self, asset_id: str) -> np.ndarray:
        """당일 포함 과거 가격 배열 (float)"""
        return self._market.window(asset_id, self.date)

    def price(self, asset_id: str) -> float:
        return float(self._market.quote(asset_id, self.date))

    def holding(self, asset_id: str) -> Optional[Holding]:
        return self._portfolio.holdings.get(asset_id)


# ============================================================================
# SignalGenerator 레지스트리
# ============================================================================

STRATEGY_REGISTRY: Dict[str, Type['SignalGenerator']] = {}


def register_strategy(name: str):
    """SignalGenerator 클래스를 전략 타입으로 등록하는 데코레이터"""
    def decorator(cls):
        cls.strategy_type = name
        STRATEGY_REGISTRY[name] = cls
        return cls
    return decorator


class SignalGenerator(ABC):
    """시그널 생성기 추상 클래스"""

    strategy_type = ''
    default_lookback = 20
    default_threshold = 0.05

    def __init__(self, strategy: Strategy, **kwargs):
        self.strategy = strategy
        self.lookback = strategy.lookback
        self.threshold = strategy.threshold

    @abstractmethod
    def generate_signals(self, context: SignalContext) -> List[Signal]:
        """당일 시그널 목록 (시그널 없으면 빈 리스트)"""


@register_strategy(MOMENTUM)
class MomentumSignalGenerator(SignalGenerator):
    """
    모멘텀 전략

    m = (p[t] - p[t-lookback]) / p[t-lookback]
    m > threshold → 매수, m < -threshold → 매도
    """

    default_lookback = 20
    default_threshold = 0.05

    def generate_signals(self, context: SignalContext) -> List[Signal]:
        signals = []
        for asset_id in context.assets:
            prices = context.window(asset_id)
            if len(prices) < self.lookback + 1:
                continue

            base = prices[-1 - self.lookback]
            momentum = (prices[-1] - base) / base

            if momentum > self.threshold:
                action = BUY
            elif momentum < -self.threshold:
                action = SELL
            else:
                continue

            signals.append(Signal(asset_id, action, float(momentum),
                                  f"momentum {momentum:+.2%}", context.date))
        return signals


@register_strategy(MEAN_REVERSION)
class MeanReversionSignalGenerator(SignalGenerator):
    """
    평균회귀 전략

    최근 lookback개 가격(당일 포함)의 평균/모표준편차로 Z-Score 계산
    z > threshold → 매도 (과매수), z < -threshold → 매수 (과매도)
    """

    default_lookback = 30
    default_threshold = 2.0

    def generate_signals(self, context: SignalContext) -> List[Signal]:
        signals = []
        for asset_id in context.assets:
            prices = context.window(asset_id)
            if len(prices) < self.lookback:
                continue

            recent = prices[-self.lookback:]
            mean = recent.mean()
            std = recent.std()  # ddof=0
            # 상수 구간은 부동소수 오차로 std가 0이 아닐 수 있음
            if np.ptp(recent) == 0 or std <= _EPS * abs(mean):
                z_score = 0.0
            else:
                z_score = (recent[-1] - mean) / std

            if z_score > self.threshold:
                action = SELL
            elif z_score < -self.threshold:
                action = BUY
            else:
                continue

            signals.append(Signal(asset_id, action, float(z_score),
                                  f"z-score {z_score:+.2f}", context.date))
        return signals


@register_strategy(BUY_AND_HOLD)
class BuyAndHoldSignalGenerator(SignalGenerator):
    """매수 후 보유: 자산별로 처음 시세가 잡힌 리밸런싱일에 1회 매수"""

    default_lookback = 1
    default_threshold = 0.0

    def __init__(self, strategy: Strategy, **kwargs):
        super().__init__(strategy, **kwargs)
        self._bought = set()

    def generate_signals(self, context: SignalContext) -> List[Signal]:
        signals = []
        for asset_id in context.assets:
            if asset_id in self._bought:
                continue
            self._bought.add(asset_id)
            signals.append(Signal(asset_id, BUY, 1.0, 'buy and hold', context.date))
        return signals


# ============================================================================
# Smart Beta
# ============================================================================

class FactorScoreProvider(ABC):
    """팩터 점수 공급자"""

    @abstractmethod
    def get_scores(self, asset_id: str, as_of: date) -> Dict[str, float]:
        """as_of 시점에 알 수 있는 팩터 점수 (없으면 빈 dict)"""


class StaticFactorScores(FactorScoreProvider):
    """
    기간 불변 팩터 점수

    Example:
        StaticFactorScores({'AAPL': {'value': 0.8, 'quality': 0.6}})
    """

    def __init__(self, scores: Dict[str, Dict[str, float]]):
        self.scores = {a: dict(s) for a, s in scores.items()}

    def get_scores(self, asset_id: str, as_of: date) -> Dict[str, float]:
        return self.scores.get(asset_id, {})


class FrameFactorScores(FactorScoreProvider):
    """
    시점별 팩터 점수 (point-in-time)

    DataFrame columns: date, asset_id, <factor1>, <factor2>, ...
    as_of 이전(포함) 가장 최근 행의 점수를 사용한다.
    """

    def __init__(self, frame: pd.DataFrame):
        df = frame.copy()
        df['date'] = pd.to_datetime(df['date']).dt.date
        self.factors = [c for c in df.columns if c not in ('date', 'asset_id')]
        self._by_asset = {
            asset_id: group.sort_values('date').reset_index(drop=True)
            for asset_id, group in df.groupby('asset_id')
        }

    def get_scores(self, asset_id: str, as_of: date) -> Dict[str, float]:
        group = self._by_asset.get(asset_id)
        if group is None:
            return {}
        eligible = group[group['date'] <= as_of]
        if eligible.empty:
            return {}
        row = eligible.iloc[-1]
        return {f: float(row[f]) for f in self.factors if pd.notna(row[f])}


def weighted_sum(scores: Dict[str, float], weights: Dict[str, float]) -> float:
    """
    기본 가중 방식: Σ(w × score) / Σ|w|

    점수가 없는 팩터는 0으로 취급
    """
    total_weight = sum(abs(w) for w in weights.values())
    if total_weight == 0:
        return 0.0
    return sum(w * scores.get(f, 0.0) for f, w in weights.items()) / total_weight


Weighting = Callable[[Dict[str, float], Dict[str, float]], float]


@register_strategy(SMART_BETA)
class SmartBetaSignalGenerator(SignalGenerator):
    """
    스마트 베타 전략

    strength = weighting(팩터 점수, factor_weights)
    strength > threshold → 매수, strength < -threshold → 매도
    """

    default_lookback = 1
    default_threshold = 0.5

    def __init__(self, strategy: Strategy, factor_provider: Optional[FactorScoreProvider] = None,
                 weighting: Weighting = weighted_sum, **kwargs):
        super().__init__(strategy, **kwargs)
        self.factor_weights = strategy.factor_weights
        self.factor_provider = factor_provider
        self.weighting = weighting
        if factor_provider is None:
            logger.warning("smart_beta strategy %s has no factor score provider", strategy.name)

    def generate_signals(self, context: SignalContext) -> List[Signal]:
        if self.factor_provider is None:
            return []

        signals = []
        for asset_id in context.assets:
            scores = self.factor_provider.get_scores(asset_id, context.date)
            if not scores:
                continue

            strength = float(self.weighting(scores, self.factor_weights))
            if strength > self.threshold:
                action = BUY
            elif strength < -self.threshold:
                action = SELL
            else:
                continue

            signals.append(Signal(asset_id, action, strength,
                                  f"factor score {strength:+.2f}", context.date))
        return signals


def create_signal_generator(strategy: Strategy, **kwargs) -> SignalGenerator:
    """
    전략 타입에 맞는 SignalGenerator 생성 (실행마다 새 인스턴스)

    Args:
        strategy: Strategy
        **kwargs: 생성기별 추가 인자 (factor_provider, weighting)
    """
    return strategy.generator_class(strategy, **kwargs)
