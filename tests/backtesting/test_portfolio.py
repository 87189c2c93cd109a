"""
Portfolio 모듈 테스트

Holding, Snapshot, Trade, SkippedOrder, Portfolio 클래스 검증
"""

from dataclasses import FrozenInstanceError
from datetime import date
from decimal import Decimal

import pytest
from src.backtesting.portfolio import (
    BUY, SELL, Holding, Portfolio, SkippedOrder, Snapshot, Trade,
)


def _trade(action, asset_id, price, quantity, cash_delta, trade_date=date(2024, 1, 2),
           realized_pnl=None):
    return Trade(
        date=trade_date,
        asset_id=asset_id,
        action=action,
        price=Decimal(str(price)),
        quantity=quantity,
        commission=Decimal('0'),
        slippage=Decimal('0'),
        cash_delta=Decimal(str(cash_delta)),
        signal_strength=1.0,
        reason='test',
        realized_pnl=realized_pnl,
    )


class TestTrade:
    """Trade 데이터 클래스 테스트"""

    def test_trade_values(self):
        trade = Trade(
            date=date(2024, 1, 2), asset_id='AAPL', action=BUY,
            price=Decimal('100'), quantity=10,
            commission=Decimal('20'), slippage=Decimal('5'),
            cash_delta=Decimal('-1025'), signal_strength=0.12, reason='momentum +12.00%',
        )

        assert trade.gross_value == Decimal('1000')
        assert trade.costs == Decimal('25')
        assert trade.is_closed is False

    def test_trade_to_dict(self):
        trade = _trade(SELL, 'AAPL', 110, 5, 550, realized_pnl=Decimal('50'))
        d = trade.to_dict()

        assert d['date'] == '2024-01-02'
        assert d['action'] == 'sell'
        assert d['price'] == '110'
        assert d['realized_pnl'] == '50'

    def test_trade_is_frozen(self):
        trade = _trade(BUY, 'AAPL', 100, 1, -100)
        with pytest.raises(FrozenInstanceError):
            trade.quantity = 2


class TestSnapshot:
    def test_holdings_value(self):
        snap = Snapshot(
            date=date(2024, 1, 2),
            total_value=Decimal('1500'),
            cash=Decimal('500'),
            holdings={'AAPL': Holding(5, Decimal('90')), 'MSFT': Holding(2, Decimal('250'))},
            prices={'AAPL': Decimal('100'), 'MSFT': Decimal('250')},
        )
        assert snap.holdings_value == Decimal('1000')
        assert snap.cash + snap.holdings_value == snap.total_value


class TestPortfolio:
    """Portfolio 클래스 테스트"""

    @pytest.fixture
    def portfolio(self):
        return Portfolio(initial_capital=100_000)

    def test_initial_state(self, portfolio):
        assert portfolio.cash == Decimal('100000')
        assert portfolio.total_value == Decimal('100000')
        assert portfolio.position_count == 0
        assert portfolio.history == []
        assert portfolio.trades == []

    def test_apply_buy(self, portfolio):
        portfolio.apply_buy(_trade(BUY, 'AAPL', 100, 10, -1000))

        assert portfolio.has_position('AAPL')
        assert portfolio.holdings['AAPL'] == Holding(10, Decimal('100'))
        assert portfolio.cash == Decimal('99000')
        assert len(portfolio.trades) == 1

    def test_apply_buy_weighted_average(self, portfolio):
        portfolio.apply_buy(_trade(BUY, 'AAPL', 100, 10, -1000))
        portfolio.apply_buy(_trade(BUY, 'AAPL', 130, 20, -2600))

        holding = portfolio.holdings['AAPL']
        assert holding.quantity == 30
        assert holding.avg_price == Decimal('120')  # (1000 + 2600) / 30

    def test_apply_sell_partial(self, portfolio):
        portfolio.apply_buy(_trade(BUY, 'AAPL', 100, 10, -1000))
        portfolio.apply_sell(_trade(SELL, 'AAPL', 110, 4, 440))

        assert portfolio.holdings['AAPL'] == Holding(6, Decimal('100'))
        assert portfolio.cash == Decimal('99440')

    def test_apply_sell_all_removes_holding(self, portfolio):
        portfolio.apply_buy(_trade(BUY, 'AAPL', 100, 10, -1000))
        portfolio.apply_sell(_trade(SELL, 'AAPL', 90, 10, 900))

        assert not portfolio.has_position('AAPL')
        assert portfolio.position_count == 0
        assert portfolio.cash == Decimal('99900')

    def test_mark_to_market(self, portfolio):
        portfolio.apply_buy(_trade(BUY, 'AAPL', 100, 10, -1000))
        prices = {'AAPL': Decimal('120'), 'MSFT': Decimal('300')}

        snap = portfolio.mark_to_market(date(2024, 1, 3), prices)

        assert snap.total_value == Decimal('100200')
        assert snap.prices == {'AAPL': Decimal('120')}  # 보유 자산만 평가
        assert portfolio.total_value == Decimal('100200')
        assert portfolio.history[-1] is snap

    def test_snapshot_not_affected_by_later_trades(self, portfolio):
        portfolio.apply_buy(_trade(BUY, 'AAPL', 100, 10, -1000))
        snap = portfolio.mark_to_market(date(2024, 1, 3), {'AAPL': Decimal('100')})
        portfolio.apply_sell(_trade(SELL, 'AAPL', 100, 10, 1000, trade_date=date(2024, 1, 3)))

        assert snap.holdings == {'AAPL': Holding(10, Decimal('100'))}

    def test_record_skip(self, portfolio):
        skipped = SkippedOrder(date(2024, 1, 2), 'AAPL', SELL, 'no_holding', Decimal('100'), -0.1)
        portfolio.record_skip(skipped)
        assert portfolio.skipped_orders == [skipped]
        assert skipped.to_dict()['required_cash'] is None

    def test_history_frame(self, portfolio):
        portfolio.mark_to_market(date(2024, 1, 2), {})
        portfolio.apply_buy(_trade(BUY, 'AAPL', 100, 10, -1000, trade_date=date(2024, 1, 2)))
        portfolio.mark_to_market(date(2024, 1, 3), {'AAPL': Decimal('110')})

        df = portfolio.history_frame()
        assert list(df.columns) == ['date', 'value', 'cash', 'position_count', 'total_trades']
        assert list(df['value']) == [100_000.0, 100_100.0]
        assert list(df['position_count']) == [0, 1]
        assert list(df['total_trades']) == [0, 1]

    def test_get_statistics(self, portfolio):
        stats = portfolio.get_statistics()
        assert stats['total_trades'] == 0
        assert stats['rebalances'] == 0
        assert stats['cash'] == Decimal('100000')
