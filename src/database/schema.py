"""
데이터베이스 스키마 생성 모듈

SQLite 가격 저장소 테이블 구조를 정의하고 생성합니다.
- assets: 자산 마스터
- daily_prices: 일별 종가/거래량 (PriceSeriesProvider 원천)
"""

import sqlite3
from pathlib import Path

from .connection import DB_PATH


def create_schema(conn: sqlite3.Connection) -> None:
    """열린 연결에 테이블/인덱스 생성 (멱등)"""
    cursor = conn.cursor()

    # Foreign Key 활성화
    cursor.execute('PRAGMA foreign_keys = ON')

    # Assets 테이블 생성
    cursor.execute('''
        CREATE TABLE IF NOT EXISTS assets (
            asset_id TEXT PRIMARY KEY,
            asset_name TEXT,
            asset_class TEXT,
            is_active BOOLEAN DEFAULT 1,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    ''')

    # Daily Prices 테이블 생성
    cursor.execute('''
        CREATE TABLE IF NOT EXISTS daily_prices (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            trade_date DATE NOT NULL,
            asset_id TEXT NOT NULL,
            close_price REAL NOT NULL,
            volume REAL DEFAULT 0,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,

            FOREIGN KEY (asset_id) REFERENCES assets(asset_id),
            UNIQUE(trade_date, asset_id),
            CHECK (close_price > 0)
        )
    ''')

    # 인덱스 생성
    cursor.execute('CREATE INDEX IF NOT EXISTS idx_prices_asset_date ON daily_prices(asset_id, trade_date)')
    cursor.execute('CREATE INDEX IF NOT EXISTS idx_prices_date ON daily_prices(trade_date)')

    conn.commit()


def create_database(db_path: str = DB_PATH):
    """
    데이터베이스 파일 및 스키마 생성

    Args:
        db_path: 데이터베이스 파일 경로
    """
    # 디렉토리 생성
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path)
    try:
        create_schema(conn)
    finally:
        conn.close()

    print(f'[OK] Database created: {db_path}')


if __name__ == '__main__':
    create_database()
