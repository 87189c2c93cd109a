"""
주문 체결 모듈

CostModel: 수수료/슬리피지 비율
ExecutionPolicy: 매수 금액/매도 비율 결정 규칙
TradeExecutor: 시그널 → Trade 변환 및 포트폴리오 반영
"""

import logging
import math
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional

from .errors import ConfigurationError
from .portfolio import (
    BUY, SELL, INSUFFICIENT_FUNDS, INSUFFICIENT_NOTIONAL, NO_HOLDING,
    Portfolio, SkippedOrder, Trade,
)
from .signals import Signal
from src.utils import to_decimal

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CostModel:
    """
    거래 비용 모델

    Args:
        commission_rate: 수수료율 (체결 금액 대비, 기본 2%)
        slippage_rate: 슬리피지율 (체결 금액 대비, 기본 0.5%)
    """
    commission_rate: float = 0.02
    slippage_rate: float = 0.005

    def __post_init__(self):
        for name in ('commission_rate', 'slippage_rate'):
            value = getattr(self, name)
            if not 0 <= value < 1:
                raise ConfigurationError(f"{name} must be in [0, 1), got: {value}")

    @classmethod
    def zero(cls) -> 'CostModel':
        """비용 없음 (include_transaction_costs=False)"""
        return cls(commission_rate=0.0, slippage_rate=0.0)

    def costs(self, amount: Decimal):
        """(수수료, 슬리피지)"""
        return (amount * to_decimal(self.commission_rate),
                amount * to_decimal(self.slippage_rate))


@dataclass(frozen=True)
class ExecutionPolicy:
    """
    주문 수량 결정 규칙

    Args:
        buy_fraction: 매수 시 포트폴리오 가치 대비 투입 비율 (기본 10%)
        sell_fraction: 매도 시 보유 수량 대비 매도 비율 (기본 50%, 최소 1주)
        fixed_buy_notional: 설정 시 buy_fraction 대신 고정 매수 금액 사용
    """
    buy_fraction: float = 0.10
    sell_fraction: float = 0.50
    fixed_buy_notional: Optional[float] = None

    def __post_init__(self):
        for name in ('buy_fraction', 'sell_fraction'):
            value = getattr(self, name)
            if not 0 < value <= 1:
                raise ConfigurationError(f"{name} must be in (0, 1], got: {value}")
        if self.fixed_buy_notional is not None and self.fixed_buy_notional <= 0:
            raise ConfigurationError(
                f"fixed_buy_notional must be positive, got: {self.fixed_buy_notional}"
            )

    def buy_notional(self, total_value: Decimal) -> Decimal:
        if self.fixed_buy_notional is not None:
            return to_decimal(self.fixed_buy_notional)
        return total_value * to_decimal(self.buy_fraction)

    def sell_quantity(self, held: int) -> int:
        return max(1, math.floor(Decimal(held) * to_decimal(self.sell_fraction)))


class TradeExecutor:
    """시그널 체결기 (넘겨받은 포트폴리오만 변경)"""

    def __init__(self, cost_model: Optional[CostModel] = None,
                 policy: Optional[ExecutionPolicy] = None):
        self.cost_model = cost_model or CostModel()
        self.policy = policy or ExecutionPolicy()

    def execute(self, portfolio: Portfolio, signals: List[Signal],
                prices: Dict[str, Decimal], trade_date: date) -> List[Trade]:
        """
        시그널 일괄 체결

        (asset_id, action) 오름차순으로 처리하므로 입력 순서와 무관하게 결과가 같다.

        Args:
            portfolio: 대상 포트폴리오
            signals: 당일 시그널
            prices: asset_id → 당일 종가
            trade_date: 체결일

        Returns:
            체결된 Trade 리스트 (건너뛴 주문은 portfolio.skipped_orders 에 기록)
        """
        trades = []
        for signal in sorted(signals, key=lambda s: (s.asset_id, s.action)):
            price = prices.get(signal.asset_id)
            if price is None:
                logger.debug("%s %s: no quote, signal ignored", trade_date, signal.asset_id)
                continue

            if signal.action == BUY:
                trade = self._buy(portfolio, signal, price, trade_date)
            elif signal.action == SELL:
                trade = self._sell(portfolio, signal, price, trade_date)
            else:
                raise ValueError(f"unknown signal action: {signal.action!r}")

            if trade is not None:
                trades.append(trade)
        return trades

    def _buy(self, portfolio: Portfolio, signal: Signal, price: Decimal,
             trade_date: date) -> Optional[Trade]:
        notional = self.policy.buy_notional(portfolio.total_value)
        commission, slippage = self.cost_model.costs(notional)
        total_cost = notional + commission + slippage

        if portfolio.cash < total_cost:
            self._skip(portfolio, signal, price, trade_date, INSUFFICIENT_FUNDS,
                       required_cash=total_cost, available_cash=portfolio.cash)
            return None

        quantity = math.floor(notional / price)
        if quantity <= 0:
            self._skip(portfolio, signal, price, trade_date, INSUFFICIENT_NOTIONAL,
                       required_cash=price, available_cash=notional)
            return None

        trade = Trade(
            date=trade_date,
            asset_id=signal.asset_id,
            action=BUY,
            price=price,
            quantity=quantity,
            commission=commission,
            slippage=slippage,
            cash_delta=-(price * quantity + commission + slippage),
            signal_strength=signal.strength,
            reason=signal.reason,
        )
        portfolio.apply_buy(trade)
        return trade

    def _sell(self, portfolio: Portfolio, signal: Signal, price: Decimal,
              trade_date: date) -> Optional[Trade]:
        holding = portfolio.holdings.get(signal.asset_id)
        if holding is None or holding.quantity <= 0:
            self._skip(portfolio, signal, price, trade_date, NO_HOLDING)
            return None

        quantity = min(holding.quantity, self.policy.sell_quantity(holding.quantity))
        gross = price * quantity
        commission, slippage = self.cost_model.costs(gross)

        trade = Trade(
            date=trade_date,
            asset_id=signal.asset_id,
            action=SELL,
            price=price,
            quantity=quantity,
            commission=commission,
            slippage=slippage,
            cash_delta=gross - commission - slippage,
            signal_strength=signal.strength,
            reason=signal.reason,
            realized_pnl=(price - holding.avg_price) * quantity - commission - slippage,
        )
        portfolio.apply_sell(trade)
        return trade

    def _skip(self, portfolio: Portfolio, signal: Signal, price: Decimal, trade_date: date,
              reason: str, required_cash: Optional[Decimal] = None,
              available_cash: Optional[Decimal] = None) -> None:
        logger.info("%s %s %s skipped: %s", trade_date, signal.action, signal.asset_id, reason)
        portfolio.record_skip(SkippedOrder(
            date=trade_date,
            asset_id=signal.asset_id,
            action=signal.action,
            reason=reason,
            price=price,
            signal_strength=signal.strength,
            required_cash=required_cash,
            available_cash=available_cash,
        ))
