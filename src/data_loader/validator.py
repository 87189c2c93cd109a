"""
데이터 검증 모듈

가격 시계열(PriceSeries)의 무결성을 확인합니다.
- 필수 컬럼 (date, price, volume)
- 날짜 중복 / 정렬
- 0 이하 가격
- DB 적재 데이터 요약 (validate_data)
"""

import sqlite3

import pandas as pd

from src.backtesting.errors import PriceDataError

PRICE_COLUMNS = ['date', 'price', 'volume']


def normalize_price_frame(df: pd.DataFrame, asset_id: str = '') -> pd.DataFrame:
    """
    가격 DataFrame을 표준 형태로 변환 후 검증

    - date: datetime.date
    - price: float
    - volume: float (없으면 0)

    Args:
        df: 원본 가격 데이터 (date, price[, volume])
        asset_id: 오류 메시지용 자산 ID

    Returns:
        pd.DataFrame: columns ['date', 'price', 'volume'], 0..n-1 index

    Raises:
        PriceDataError: 검증 실패 시
    """
    if df is None:
        raise PriceDataError(f"[{asset_id}] price series is None")

    missing = [c for c in ('date', 'price') if c not in df.columns]
    if missing:
        raise PriceDataError(f"[{asset_id}] missing columns: {missing}")

    out = pd.DataFrame({
        'date': pd.to_datetime(df['date']).dt.date,
        'price': df['price'].astype(float),
        'volume': df['volume'].astype(float) if 'volume' in df.columns else 0.0,
    }).reset_index(drop=True)

    validate_price_series(out, asset_id)
    return out


def validate_price_series(df: pd.DataFrame, asset_id: str = '') -> None:
    """
    PriceSeries 불변 조건 검증

    - 날짜 중복 없음
    - 날짜 엄격 증가
    - price > 0 (NaN 불가)

    Raises:
        PriceDataError: 위반 시
    """
    if df.empty:
        return

    dates = df['date']
    if dates.duplicated().any():
        dup = dates[dates.duplicated()].iloc[0]
        raise PriceDataError(f"[{asset_id}] duplicate date: {dup}")

    if not dates.is_monotonic_increasing:
        raise PriceDataError(f"[{asset_id}] dates must be strictly increasing")

    prices = df['price']
    if prices.isna().any():
        raise PriceDataError(f"[{asset_id}] price contains NaN")

    if (prices <= 0).any():
        bad = df.loc[prices <= 0, 'date'].iloc[0]
        raise PriceDataError(f"[{asset_id}] non-positive price on {bad}")


def validate_data(conn: sqlite3.Connection):
    """
    적재된 가격 데이터 검증

    Args:
        conn: SQLite 데이터베이스 연결 객체
    """
    print("=" * 60)
    print("Data Validation Started")
    print("=" * 60)

    # 1. 레코드 수 확인
    count = pd.read_sql("SELECT COUNT(*) as cnt FROM daily_prices", conn)
    print(f"\n[INFO] Total records: {count['cnt'].iloc[0]:,}")

    # 2. 중복 체크
    duplicates = pd.read_sql("""
        SELECT trade_date, asset_id, COUNT(*) as cnt
        FROM daily_prices
        GROUP BY trade_date, asset_id
        HAVING COUNT(*) > 1
    """, conn)

    if len(duplicates) > 0:
        print(f"\n[WARN] Found {len(duplicates)} duplicate records")
        print(duplicates.head())
    else:
        print("\n[OK] No duplicates found")

    # 3. 0 이하 / NULL 가격
    bad_prices = pd.read_sql("""
        SELECT COUNT(*) as cnt
        FROM daily_prices
        WHERE close_price IS NULL OR close_price <= 0
    """, conn)

    if bad_prices['cnt'].iloc[0] > 0:
        print(f"\n[WARN] Found {bad_prices['cnt'].iloc[0]} records with NULL or non-positive price")
    else:
        print("[OK] All prices positive")

    # 4. 날짜 범위 / 자산 수
    summary = pd.read_sql("""
        SELECT MIN(trade_date) as min_date, MAX(trade_date) as max_date,
               COUNT(DISTINCT asset_id) as assets
        FROM daily_prices
    """, conn)
    print(f"\n[INFO] Date range: {summary['min_date'].iloc[0]} ~ {summary['max_date'].iloc[0]}")
    print(f"[INFO] Unique assets: {summary['assets'].iloc[0]}")

    print("\n" + "=" * 60)
    print("Validation Complete")
    print("=" * 60)


if __name__ == '__main__':
    from src.database.connection import get_connection

    conn = get_connection()
    validate_data(conn)
    conn.close()
