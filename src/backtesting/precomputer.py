"""
백테스트 사전 계산 모듈

시뮬레이션 루프 전에 가격 시계열을 한 번 정리하여
거래일 목록, (자산, 날짜) → 가격 O(1) lookup, 자산별 가격 배열을 만든다.
루프 안에서는 DataFrame 필터링 없이 배열 슬라이싱만 수행.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple

import numpy as np
import pandas as pd

from src.data_loader import validator as price_validator
from src.utils import to_decimal

logger = logging.getLogger(__name__)


@dataclass
class MarketData:
    """사전 계산 결과 컨테이너

    Attributes:
        trading_dates: 유니버스 자산 중 하나라도 시세가 있는 날짜 (정렬됨)
        price_lookup: (asset_id, date) → 종가 (Decimal)
        price_arrays: asset_id → 종가 배열 (float, 날짜 오름차순)
        date_index: (asset_id, date) → price_arrays 내 위치
        quotes_by_date: date → 해당일 시세가 있는 유니버스 자산 (정렬됨)
    """
    trading_dates: List[date] = field(default_factory=list)
    price_lookup: Dict[Tuple[str, date], Decimal] = field(default_factory=dict)
    price_arrays: Dict[str, np.ndarray] = field(default_factory=dict)
    date_index: Dict[Tuple[str, date], int] = field(default_factory=dict)
    quotes_by_date: Dict[date, List[str]] = field(default_factory=dict)
    dates_by_asset: Dict[str, List[date]] = field(default_factory=dict)

    def quote(self, asset_id: str, trade_date: date) -> Optional[Decimal]:
        """당일 종가 (없으면 None)"""
        return self.price_lookup.get((asset_id, trade_date))

    def has_quote(self, asset_id: str, trade_date: date) -> bool:
        return (asset_id, trade_date) in self.price_lookup

    def quoting_assets(self, trade_date: date) -> List[str]:
        return self.quotes_by_date.get(trade_date, [])

    def window(self, asset_id: str, trade_date: date) -> np.ndarray:
        """
        trade_date까지(포함)의 가격 배열 (미래 데이터 차단)

        trade_date에 시세가 없으면 빈 배열
        """
        idx = self.date_index.get((asset_id, trade_date))
        if idx is None:
            return np.empty(0)
        return self.price_arrays[asset_id][:idx + 1]

    def sample(self, asset_id: str, dates: Iterable[date]) -> List[Optional[Decimal]]:
        """
        지정 날짜들의 가격 (시세 없는 날은 직전 가격, 첫 시세 이전은 None)
        """
        known = self.dates_by_asset.get(asset_id, [])
        out = []
        last = None
        pos = 0
        for d in dates:
            while pos < len(known) and known[pos] <= d:
                last = self.price_lookup[(asset_id, known[pos])]
                pos += 1
            out.append(last)
        return out


class MarketDataPrecomputer:
    """가격 시계열 사전 계산기

    Example:
        pc = MarketDataPrecomputer(price_data, universe=['AAPL', 'MSFT'])
        market = pc.precompute(start_date=date(2024, 1, 1), end_date=date(2024, 12, 31))
    """

    def __init__(self, price_data: Dict[str, pd.DataFrame], universe: List[str],
                 extra_assets: Optional[List[str]] = None):
        """
        Args:
            price_data: asset_id → 가격 DataFrame (date, price[, volume])
            universe: 거래 대상 자산 (거래일 산출 기준)
            extra_assets: 거래일 산출에는 쓰지 않지만 lookup이 필요한 자산 (벤치마크)

        Raises:
            PriceDataError: 가격 시계열 검증 실패 시
        """
        self.universe = list(universe)
        self.extra_assets = [a for a in (extra_assets or []) if a not in self.universe]
        self.frames = {}
        for asset_id in self.universe + self.extra_assets:
            df = price_data.get(asset_id)
            if df is None:
                logger.warning("No price series supplied for %s", asset_id)
                continue
            self.frames[asset_id] = price_validator.normalize_price_frame(df, asset_id)

    def precompute(self, start_date: Optional[date] = None, end_date: Optional[date] = None,
                   verbose: bool = False) -> MarketData:
        """
        전체 기간 lookup/배열 사전 계산

        Args:
            start_date: 거래일 필터 시작일 (None이면 전체, 윈도우용 과거 데이터는 유지)
            end_date: 데이터 종료일 (None이면 전체)
            verbose: 진행 상황 출력
        """
        if verbose:
            print("사전 계산 시작...")

        market = MarketData()
        universe = set(self.universe)
        all_dates = set()

        for asset_id, df in self.frames.items():
            if end_date is not None:
                df = df[df['date'] <= end_date]

            dates = list(df['date'])
            prices = df['price'].to_numpy(dtype=float)

            market.price_arrays[asset_id] = prices
            market.dates_by_asset[asset_id] = dates
            for i, (d, p) in enumerate(zip(dates, prices)):
                market.price_lookup[(asset_id, d)] = to_decimal(p)
                market.date_index[(asset_id, d)] = i
                if asset_id in universe:
                    market.quotes_by_date.setdefault(d, []).append(asset_id)
                    all_dates.add(d)

        for d in market.quotes_by_date:
            market.quotes_by_date[d].sort()

        trading_dates = sorted(all_dates)
        if start_date is not None:
            trading_dates = [d for d in trading_dates if d >= start_date]
        market.trading_dates = trading_dates

        if verbose:
            print(f"  거래일: {len(trading_dates)}일, 자산: {len(self.frames)}개")
            print("사전 계산 완료!")

        return market
