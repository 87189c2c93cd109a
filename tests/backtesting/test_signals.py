"""
SignalGenerator 모듈 테스트

전략 정의, 레지스트리, 전략별 시그널 생성 검증
"""

import logging
from datetime import date

import pandas as pd
import pytest
from src.backtesting.errors import ConfigurationError
from src.backtesting.portfolio import BUY, SELL, Portfolio
from src.backtesting.precomputer import MarketDataPrecomputer
from src.backtesting.signals import (
    STRATEGY_REGISTRY, FrameFactorScores, MomentumSignalGenerator, SignalContext,
    SignalGenerator, StaticFactorScores, Strategy, create_signal_generator,
    normalize_strategy_type, register_strategy, weighted_sum,
)


def _context(prices_by_asset, trade_index=-1, universe=None):
    """자산별 가격 리스트 → (거래일, SignalContext)"""
    n = max(len(p) for p in prices_by_asset.values())
    dates = pd.date_range('2024-01-01', periods=n, freq='D')
    price_data = {
        asset_id: pd.DataFrame({'date': dates[:len(prices)], 'price': prices})
        for asset_id, prices in prices_by_asset.items()
    }
    universe = universe or sorted(prices_by_asset)
    market = MarketDataPrecomputer(price_data, universe).precompute()
    trade_date = market.trading_dates[trade_index]
    return SignalContext(trade_date, market, Portfolio(100_000), universe)


class TestStrategy:
    """Strategy 정의 테스트"""

    def test_registry_has_builtin_types(self):
        assert {'momentum', 'mean_reversion', 'buy_and_hold', 'smart_beta'} <= set(STRATEGY_REGISTRY)

    def test_camel_case_alias(self):
        assert normalize_strategy_type('meanReversion') == 'mean_reversion'
        assert Strategy(type='buyAndHold', universe=['AAPL']).type == 'buy_and_hold'

    def test_unknown_type(self):
        with pytest.raises(ConfigurationError):
            Strategy(type='arbitrage', universe=['AAPL'])

    def test_default_parameters(self):
        momentum = Strategy(type='momentum', universe=['AAPL'])
        assert momentum.lookback == 20
        assert momentum.threshold == 0.05
        assert momentum.rebalance_frequency == 'monthly'
        assert momentum.name == 'momentum'

        reversion = Strategy(type='mean_reversion', universe=['AAPL'])
        assert reversion.lookback == 30
        assert reversion.threshold == 2.0

    def test_with_parameters_copies(self):
        base = Strategy(type='momentum', universe=['AAPL'], parameters={'lookback': 10})
        tuned = base.with_parameters(threshold=0.1)

        assert tuned.lookback == 10
        assert tuned.threshold == 0.1
        assert 'threshold' not in base.parameters

    def test_to_dict(self):
        d = Strategy(type='momentum', universe=['AAPL'], name='mom').to_dict()
        assert d == {'type': 'momentum', 'universe': ['AAPL'], 'parameters': {},
                     'rebalance_frequency': 'monthly', 'name': 'mom'}

    def test_register_custom_strategy(self):
        @register_strategy('always_sell_test')
        class AlwaysSell(SignalGenerator):
            def generate_signals(self, context):
                return []

        try:
            strategy = Strategy(type='always_sell_test', universe=['AAPL'])
            assert isinstance(create_signal_generator(strategy), AlwaysSell)
        finally:
            del STRATEGY_REGISTRY['always_sell_test']


class TestMomentum:
    """모멘텀 시그널"""

    def _generator(self, **params):
        params = {'lookback': 5, 'threshold': 0.05, **params}
        return create_signal_generator(Strategy(type='momentum', universe=['AAPL'],
                                                parameters=params))

    def test_buy_on_rise(self):
        context = _context({'AAPL': [100, 101, 102, 103, 104, 110]})
        signals = self._generator().generate_signals(context)

        assert len(signals) == 1
        assert signals[0].action == BUY
        assert signals[0].strength == pytest.approx(0.10)
        assert signals[0].reason == 'momentum +10.00%'

    def test_sell_on_fall(self):
        context = _context({'AAPL': [100, 99, 98, 97, 96, 90]})
        signals = self._generator().generate_signals(context)
        assert signals[0].action == SELL
        assert signals[0].strength == pytest.approx(-0.10)

    def test_within_threshold_no_signal(self):
        context = _context({'AAPL': [100, 100, 100, 100, 100, 103]})
        assert self._generator().generate_signals(context) == []

    def test_insufficient_history(self):
        # lookback + 1 개 미만
        context = _context({'AAPL': [100, 110, 120, 130, 140]})
        assert self._generator().generate_signals(context) == []

    def test_uses_only_past_prices(self):
        # 5번째 날 기준 시그널은 이후 급락과 무관
        context = _context({'AAPL': [100, 101, 102, 103, 104, 110, 50, 40]}, trade_index=5)
        signals = self._generator().generate_signals(context)
        assert signals[0].action == BUY

    def test_isinstance(self):
        assert isinstance(self._generator(), MomentumSignalGenerator)


class TestMeanReversion:
    """평균회귀 시그널"""

    def _generator(self, lookback=5, threshold=1.5):
        return create_signal_generator(Strategy(
            type='mean_reversion', universe=['AAPL'],
            parameters={'lookback': lookback, 'threshold': threshold},
        ))

    def test_buy_when_oversold(self):
        context = _context({'AAPL': [100, 100, 100, 100, 80]})
        signals = self._generator().generate_signals(context)

        # mean 96, std 8 → z = -2
        assert signals[0].action == BUY
        assert signals[0].strength == pytest.approx(-2.0)
        assert signals[0].reason == 'z-score -2.00'

    def test_sell_when_overbought(self):
        context = _context({'AAPL': [100, 100, 100, 100, 120]})
        signals = self._generator().generate_signals(context)
        assert signals[0].action == SELL

    @pytest.mark.parametrize('price', [100, 100.1, 1.1, 33.3, 0.7])
    def test_flat_prices_zero_score(self, price):
        # 100.1, 1.1 등은 평균에 반올림 오차가 남아 std가 0이 아님
        context = _context({'AAPL': [price] * 6})
        assert self._generator(threshold=0.0).generate_signals(context) == []

    def test_insufficient_history(self):
        context = _context({'AAPL': [100, 100, 80]})
        assert self._generator().generate_signals(context) == []


class TestBuyAndHold:
    def test_buys_each_asset_once(self):
        generator = create_signal_generator(Strategy(type='buy_and_hold',
                                                     universe=['AAPL', 'MSFT']))
        first = _context({'AAPL': [100, 101], 'MSFT': [300, 301]}, trade_index=0)
        second = _context({'AAPL': [100, 101], 'MSFT': [300, 301]}, trade_index=1)

        signals = generator.generate_signals(first)
        assert [(s.asset_id, s.action) for s in signals] == [('AAPL', BUY), ('MSFT', BUY)]
        assert generator.generate_signals(second) == []

    def test_late_listing_bought_when_quoted(self):
        generator = create_signal_generator(Strategy(type='buy_and_hold',
                                                     universe=['AAPL', 'NEW']))
        # NEW 는 첫날 시세 없음
        data = {'AAPL': [100, 101, 102], 'NEW': [50, 51]}
        n = 3
        dates = pd.date_range('2024-01-01', periods=n, freq='D')
        price_data = {
            'AAPL': pd.DataFrame({'date': dates, 'price': data['AAPL']}),
            'NEW': pd.DataFrame({'date': dates[1:], 'price': data['NEW']}),
        }
        market = MarketDataPrecomputer(price_data, ['AAPL', 'NEW']).precompute()
        portfolio = Portfolio(100_000)

        day1 = generator.generate_signals(SignalContext(market.trading_dates[0], market,
                                                        portfolio, ['AAPL', 'NEW']))
        day2 = generator.generate_signals(SignalContext(market.trading_dates[1], market,
                                                        portfolio, ['AAPL', 'NEW']))
        assert [s.asset_id for s in day1] == ['AAPL']
        assert [s.asset_id for s in day2] == ['NEW']


class TestSmartBeta:
    """스마트 베타 시그널"""

    def _strategy(self, threshold=0.5):
        return Strategy(type='smart_beta', universe=['AAPL', 'MSFT', 'XOM'],
                        parameters={'threshold': threshold,
                                    'factor_weights': {'value': 0.5, 'quality': 0.5}})

    def test_weighted_sum(self):
        assert weighted_sum({'value': 1.0, 'quality': 0.0}, {'value': 1, 'quality': 1}) == 0.5
        assert weighted_sum({'value': 1.0}, {'value': 2, 'quality': -2}) == 0.5
        assert weighted_sum({'value': 1.0}, {}) == 0.0

    def test_signals_from_static_scores(self):
        provider = StaticFactorScores({
            'AAPL': {'value': 0.9, 'quality': 0.8},
            'MSFT': {'value': 0.2, 'quality': 0.1},
            'XOM': {'value': -0.9, 'quality': -0.7},
        })
        generator = create_signal_generator(self._strategy(), factor_provider=provider)
        context = _context({'AAPL': [1.0], 'MSFT': [1.0], 'XOM': [1.0]})

        signals = generator.generate_signals(context)
        assert [(s.asset_id, s.action) for s in signals] == [('AAPL', BUY), ('XOM', SELL)]
        assert signals[0].strength == pytest.approx(0.85)
        assert signals[0].reason == 'factor score +0.85'

    def test_custom_weighting(self):
        provider = StaticFactorScores({'AAPL': {'value': 0.1}})
        generator = create_signal_generator(self._strategy(), factor_provider=provider,
                                            weighting=lambda scores, weights: 1.0)
        context = _context({'AAPL': [1.0]}, universe=['AAPL'])
        assert generator.generate_signals(context)[0].action == BUY

    def test_without_provider(self, caplog):
        with caplog.at_level(logging.WARNING):
            generator = create_signal_generator(self._strategy())
        assert 'no factor score provider' in caplog.text
        assert generator.generate_signals(_context({'AAPL': [1.0]})) == []

    def test_frame_scores_point_in_time(self):
        frame = pd.DataFrame({
            'date': ['2024-01-01', '2024-01-10'],
            'asset_id': ['AAPL', 'AAPL'],
            'value': [0.1, 0.9],
        })
        provider = FrameFactorScores(frame)

        assert provider.get_scores('AAPL', date(2023, 12, 31)) == {}
        assert provider.get_scores('AAPL', date(2024, 1, 5)) == {'value': 0.1}
        assert provider.get_scores('AAPL', date(2024, 1, 10)) == {'value': 0.9}
        assert provider.get_scores('MSFT', date(2024, 1, 10)) == {}
