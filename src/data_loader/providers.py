"""
가격 시계열 공급자 (Price Series Provider)

백테스트 엔진은 가격을 직접 생성하지 않고 주입된 공급자에서만 읽는다.

Interface Contract:
    1. date 오름차순 반환
    2. 요청 범위(start_date ~ end_date, 양 끝 포함) 밖의 데이터 반환 금지
    3. 데이터 없는 자산은 빈 DataFrame 반환
"""

import logging
import sqlite3
from abc import ABC, abstractmethod
from datetime import date
from typing import Dict, Iterable, Optional, Union

import pandas as pd

from src.utils import parse_date, validate_asset_id
from .validator import PRICE_COLUMNS, normalize_price_frame

logger = logging.getLogger(__name__)

DateLike = Union[str, date]


def _empty_frame() -> pd.DataFrame:
    return pd.DataFrame(columns=PRICE_COLUMNS)


class PriceSeriesProvider(ABC):
    """가격 공급자 추상 클래스"""

    @abstractmethod
    def get_historical_prices(self, asset_id: str, start_date: DateLike,
                              end_date: DateLike) -> pd.DataFrame:
        """
        단일 자산 가격 시계열 조회

        Returns:
            DataFrame ['date', 'price', 'volume'] (date 오름차순, 범위 내)
        """

    def get_price_data(self, asset_ids: Iterable[str], start_date: DateLike,
                       end_date: DateLike) -> Dict[str, pd.DataFrame]:
        """여러 자산 일괄 조회 (빈 결과 자산도 키 유지)"""
        return {
            asset_id: self.get_historical_prices(asset_id, start_date, end_date)
            for asset_id in asset_ids
        }


class InMemoryPriceProvider(PriceSeriesProvider):
    """
    메모리 DataFrame 기반 공급자 (테스트/CSV 로드용)

    Example:
        provider = InMemoryPriceProvider({'AAPL': df_aapl, 'MSFT': df_msft})
        frames = provider.get_price_data(['AAPL'], '2024-01-01', '2024-06-30')
    """

    def __init__(self, frames: Dict[str, pd.DataFrame]):
        self.frames = {
            asset_id: normalize_price_frame(df, asset_id)
            for asset_id, df in frames.items()
        }

    def get_historical_prices(self, asset_id: str, start_date: DateLike,
                              end_date: DateLike) -> pd.DataFrame:
        df = self.frames.get(asset_id)
        if df is None:
            logger.warning("No price series for %s", asset_id)
            return _empty_frame()

        start, end = parse_date(start_date), parse_date(end_date)
        mask = (df['date'] >= start) & (df['date'] <= end)
        return df.loc[mask].reset_index(drop=True)

    @classmethod
    def from_csv(cls, path: str, asset_column: str = 'asset_id') -> 'InMemoryPriceProvider':
        """
        long 형식 CSV 로드

        CSV columns: asset_id, date, price[, volume]
        """
        raw = pd.read_csv(path)
        frames = {
            asset_id: group.sort_values('date').drop(columns=[asset_column])
            for asset_id, group in raw.groupby(asset_column)
        }
        return cls(frames)


class SQLitePriceProvider(PriceSeriesProvider):
    """daily_prices 테이블 기반 공급자"""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def get_historical_prices(self, asset_id: str, start_date: DateLike,
                              end_date: DateLike) -> pd.DataFrame:
        if not validate_asset_id(asset_id):
            raise ValueError(f"Invalid asset id: {asset_id!r}")

        start, end = parse_date(start_date), parse_date(end_date)
        query = """
        SELECT trade_date AS date, close_price AS price, volume
        FROM daily_prices
        WHERE asset_id = ? AND trade_date BETWEEN ? AND ?
        ORDER BY trade_date
        """
        df = pd.read_sql(query, self.conn,
                         params=[asset_id, start.isoformat(), end.isoformat()])

        if df.empty:
            logger.warning("No prices for %s between %s and %s", asset_id, start, end)
            return _empty_frame()

        return normalize_price_frame(df, asset_id)

    def save_prices(self, asset_id: str, df: pd.DataFrame,
                    asset_name: Optional[str] = None) -> int:
        """
        가격 시계열 적재 (같은 날짜는 덮어쓰기)

        Returns:
            적재 행 수
        """
        if not validate_asset_id(asset_id):
            raise ValueError(f"Invalid asset id: {asset_id!r}")

        frame = normalize_price_frame(df, asset_id)
        self.conn.execute(
            "INSERT OR IGNORE INTO assets (asset_id, asset_name) VALUES (?, ?)",
            (asset_id, asset_name or asset_id),
        )
        rows = [
            (d.isoformat(), asset_id, float(p), float(v))
            for d, p, v in zip(frame['date'], frame['price'], frame['volume'])
        ]
        self.conn.executemany(
            "INSERT OR REPLACE INTO daily_prices (trade_date, asset_id, close_price, volume) "
            "VALUES (?, ?, ?, ?)",
            rows,
        )
        self.conn.commit()
        return len(rows)
