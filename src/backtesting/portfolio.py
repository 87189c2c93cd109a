"""
포트폴리오 관리 모듈

Holding, Snapshot, Trade, SkippedOrder, Portfolio 클래스 구현

금액은 모두 Decimal (cash + Σ 수량×가격 불변식의 부동소수 오차 방지)
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional

import pandas as pd

from src.utils import to_decimal

BUY = 'buy'
SELL = 'sell'

# SkippedOrder 사유 코드
INSUFFICIENT_FUNDS = 'insufficient_funds'
INSUFFICIENT_NOTIONAL = 'insufficient_notional'
NO_HOLDING = 'no_holding'


@dataclass(frozen=True)
class Holding:
    """보유 포지션 (수량, 평균 매입가)"""
    quantity: int
    avg_price: Decimal

    def market_value(self, price: Decimal) -> Decimal:
        """현재 평가 금액"""
        return price * self.quantity


@dataclass(frozen=True)
class Snapshot:
    """일별 포트폴리오 상태 (append 후 불변)"""
    date: date
    total_value: Decimal
    cash: Decimal
    holdings: Dict[str, Holding]
    prices: Dict[str, Decimal]  # 평가에 사용한 가격

    @property
    def holdings_value(self) -> Decimal:
        return sum(
            (h.market_value(self.prices[a]) for a, h in self.holdings.items()),
            Decimal('0'),
        )


@dataclass(frozen=True)
class Trade:
    """체결된 거래 기록"""
    date: date
    asset_id: str
    action: str  # 'buy' 또는 'sell'
    price: Decimal
    quantity: int
    commission: Decimal
    slippage: Decimal
    cash_delta: Decimal  # 매수: 음수 (총 지출), 매도: 양수 (순 회수)
    signal_strength: float
    reason: str
    realized_pnl: Optional[Decimal] = None  # 매도만 기록

    @property
    def gross_value(self) -> Decimal:
        """체결 금액 (수량 × 가격)"""
        return self.price * self.quantity

    @property
    def costs(self) -> Decimal:
        """거래 비용 (수수료 + 슬리피지)"""
        return self.commission + self.slippage

    @property
    def is_closed(self) -> bool:
        """실현 손익이 있는 청산 거래 여부"""
        return self.realized_pnl is not None

    def to_dict(self) -> dict:
        """딕셔너리로 변환 (CSV 저장용, 금액은 문자열로 보존)"""
        return {
            'date': self.date.isoformat(),
            'asset_id': self.asset_id,
            'action': self.action,
            'price': str(self.price),
            'quantity': self.quantity,
            'commission': str(self.commission),
            'slippage': str(self.slippage),
            'cash_delta': str(self.cash_delta),
            'signal_strength': self.signal_strength,
            'reason': self.reason,
            'realized_pnl': None if self.realized_pnl is None else str(self.realized_pnl),
        }


@dataclass(frozen=True)
class SkippedOrder:
    """실행되지 못한 시그널 기록 (현금 부족, 미보유 매도 등)"""
    date: date
    asset_id: str
    action: str
    reason: str
    price: Decimal
    signal_strength: float
    required_cash: Optional[Decimal] = None
    available_cash: Optional[Decimal] = None

    def to_dict(self) -> dict:
        return {
            'date': self.date.isoformat(),
            'asset_id': self.asset_id,
            'action': self.action,
            'reason': self.reason,
            'price': str(self.price),
            'signal_strength': self.signal_strength,
            'required_cash': None if self.required_cash is None else str(self.required_cash),
            'available_cash': None if self.available_cash is None else str(self.available_cash),
        }


class Portfolio:
    """포트폴리오 관리 클래스

    상태 변경은 TradeExecutor(매수/매도)와 BacktestEngine(일별 평가)만 수행한다.
    """

    def __init__(self, initial_capital):
        """
        초기화

        Args:
            initial_capital: 초기 자본금
        """
        self.initial_capital = to_decimal(initial_capital)
        self.cash = self.initial_capital
        self.total_value = self.initial_capital
        self.holdings: Dict[str, Holding] = {}  # asset_id -> Holding
        self.history: List[Snapshot] = []
        self.trades: List[Trade] = []
        self.skipped_orders: List[SkippedOrder] = []
        self.rebalance_dates: List[date] = []

    @property
    def position_count(self) -> int:
        """현재 보유 종목 수"""
        return len(self.holdings)

    def has_position(self, asset_id: str) -> bool:
        """특정 자산을 보유 중인지 확인"""
        return asset_id in self.holdings

    def get_portfolio_value(self, current_prices: Dict[str, Decimal]) -> Decimal:
        """
        현재 포트폴리오 총 가치 계산

        Args:
            current_prices: {asset_id: 평가 가격} (보유 자산 전부 포함해야 함)

        Returns:
            현금 + 보유 포지션 평가액
        """
        total_value = self.cash
        for asset_id, holding in self.holdings.items():
            total_value += holding.market_value(current_prices[asset_id])
        return total_value

    def mark_to_market(self, trade_date: date, current_prices: Dict[str, Decimal]) -> Snapshot:
        """
        보유 자산 평가 후 Snapshot 기록

        Args:
            trade_date: 평가일
            current_prices: 보유 자산별 평가 가격

        Returns:
            추가된 Snapshot
        """
        marks = {asset_id: current_prices[asset_id] for asset_id in self.holdings}
        self.total_value = self.get_portfolio_value(marks)

        snapshot = Snapshot(
            date=trade_date,
            total_value=self.total_value,
            cash=self.cash,
            holdings=dict(self.holdings),
            prices=marks,
        )
        self.history.append(snapshot)
        return snapshot

    # ------------------------------------------------------------------
    # TradeExecutor 전용 변경 메서드
    # ------------------------------------------------------------------

    def apply_buy(self, trade: Trade) -> None:
        """매수 체결 반영 (평균가 = 수량 가중 평균)"""
        current = self.holdings.get(trade.asset_id)
        if current is None:
            new_quantity = trade.quantity
            new_avg = trade.price
        else:
            new_quantity = current.quantity + trade.quantity
            new_avg = (current.avg_price * current.quantity
                       + trade.price * trade.quantity) / new_quantity

        self.holdings[trade.asset_id] = Holding(quantity=new_quantity, avg_price=new_avg)
        self.cash += trade.cash_delta
        self.trades.append(trade)

    def apply_sell(self, trade: Trade) -> None:
        """매도 체결 반영 (잔량 0이면 보유 목록에서 제거)"""
        current = self.holdings[trade.asset_id]
        remaining = current.quantity - trade.quantity

        if remaining > 0:
            self.holdings[trade.asset_id] = Holding(quantity=remaining,
                                                    avg_price=current.avg_price)
        else:
            del self.holdings[trade.asset_id]

        self.cash += trade.cash_delta
        self.trades.append(trade)

    def record_skip(self, skipped: SkippedOrder) -> None:
        self.skipped_orders.append(skipped)

    # ------------------------------------------------------------------
    # 조회
    # ------------------------------------------------------------------

    def history_frame(self) -> pd.DataFrame:
        """
        일별 가치 DataFrame

        columns: ['date', 'value', 'cash', 'position_count', 'total_trades']
        """
        rows = []
        trade_idx = 0
        for snap in self.history:
            while trade_idx < len(self.trades) and self.trades[trade_idx].date < snap.date:
                trade_idx += 1
            rows.append({
                'date': snap.date,
                'value': float(snap.total_value),
                'cash': float(snap.cash),
                'position_count': len(snap.holdings),
                'total_trades': trade_idx,
            })
        return pd.DataFrame(rows, columns=['date', 'value', 'cash', 'position_count', 'total_trades'])

    def get_statistics(self) -> dict:
        """포트폴리오 통계"""
        return {
            'cash': self.cash,
            'total_value': self.total_value,
            'position_count': self.position_count,
            'total_trades': len(self.trades),
            'skipped_orders': len(self.skipped_orders),
            'rebalances': len(self.rebalance_dates),
        }
