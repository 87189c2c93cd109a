"""
MarketDataPrecomputer 모듈 테스트

사전 계산 결과의 lookup / 윈도우 / 미래 데이터 차단 검증
"""

import logging
from datetime import date
from decimal import Decimal

import pandas as pd
import pytest
from src.backtesting.errors import PriceDataError
from src.backtesting.precomputer import MarketDataPrecomputer


def _frame(dates, prices):
    return pd.DataFrame({'date': dates, 'price': prices})


class TestMarketDataPrecomputer:
    """사전 계산 테스트"""

    @pytest.fixture
    def price_data(self):
        return {
            # AAPL: 1/2 ~ 1/5 매일 시세
            'AAPL': _frame(['2024-01-02', '2024-01-03', '2024-01-04', '2024-01-05'],
                           [100.0, 101.0, 102.0, 103.0]),
            # MSFT: 1/3 휴장
            'MSFT': _frame(['2024-01-02', '2024-01-04', '2024-01-05'],
                           [300.0, 303.0, 306.0]),
            # 벤치마크: 거래일 산출 대상 아님
            'SPY': _frame(['2024-01-01', '2024-01-02', '2024-01-08'], [470.0, 472.0, 480.0]),
        }

    @pytest.fixture
    def market(self, price_data):
        pc = MarketDataPrecomputer(price_data, ['MSFT', 'AAPL'], extra_assets=['SPY'])
        return pc.precompute()

    def test_trading_dates_from_universe_only(self, market):
        assert market.trading_dates == [date(2024, 1, 2), date(2024, 1, 3),
                                        date(2024, 1, 4), date(2024, 1, 5)]

    def test_price_lookup(self, market):
        assert market.quote('AAPL', date(2024, 1, 3)) == Decimal('101.0')
        assert market.quote('MSFT', date(2024, 1, 3)) is None
        assert market.has_quote('SPY', date(2024, 1, 8))

    def test_quoting_assets_sorted(self, market):
        assert market.quoting_assets(date(2024, 1, 2)) == ['AAPL', 'MSFT']
        assert market.quoting_assets(date(2024, 1, 3)) == ['AAPL']
        # 벤치마크는 유니버스가 아니므로 제외
        assert market.quoting_assets(date(2024, 1, 8)) == []

    def test_window_stops_at_trade_date(self, market):
        window = market.window('AAPL', date(2024, 1, 4))
        assert list(window) == [100.0, 101.0, 102.0]

    def test_window_without_quote_is_empty(self, market):
        assert len(market.window('MSFT', date(2024, 1, 3))) == 0

    def test_sample_carries_last_price(self, market):
        prices = market.sample('SPY', [date(2023, 12, 29), date(2024, 1, 2),
                                       date(2024, 1, 5), date(2024, 1, 8)])
        assert prices == [None, Decimal('472.0'), Decimal('472.0'), Decimal('480.0')]

    def test_start_date_keeps_history_for_windows(self, price_data):
        pc = MarketDataPrecomputer(price_data, ['AAPL'])
        market = pc.precompute(start_date=date(2024, 1, 4))

        assert market.trading_dates == [date(2024, 1, 4), date(2024, 1, 5)]
        assert list(market.window('AAPL', date(2024, 1, 4))) == [100.0, 101.0, 102.0]

    def test_end_date_drops_future(self, price_data):
        pc = MarketDataPrecomputer(price_data, ['AAPL'])
        market = pc.precompute(end_date=date(2024, 1, 3))

        assert market.trading_dates[-1] == date(2024, 1, 3)
        assert market.quote('AAPL', date(2024, 1, 4)) is None
        assert len(market.price_arrays['AAPL']) == 2

    def test_missing_series_warns(self, price_data, caplog):
        with caplog.at_level(logging.WARNING):
            pc = MarketDataPrecomputer(price_data, ['AAPL', 'TSLA'])
        assert 'TSLA' in caplog.text
        assert 'TSLA' not in pc.frames

    def test_invalid_series_raises(self):
        bad = {'AAPL': _frame(['2024-01-03', '2024-01-02'], [1.0, 2.0])}
        with pytest.raises(PriceDataError):
            MarketDataPrecomputer(bad, ['AAPL'])
