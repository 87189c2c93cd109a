"""
가격 데이터 적재 스크립트 (CSV → SQLite)

사용법:
    python scripts/loaders/load_prices.py <가격_파일.csv>
    python scripts/loaders/load_prices.py <가격_파일.csv> --db data/processed/price_data.db
    python scripts/loaders/load_prices.py <가격_파일.csv> --dry-run

CSV 형식 (long):
    asset_id,date,price,volume
    AAPL,2024-01-02,185.64,82488700
"""

import argparse
import sys
from pathlib import Path

import pandas as pd
from tqdm import tqdm

# 프로젝트 루트를 sys.path에 추가
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

from src.backtesting.errors import PriceDataError
from src.config import load_config
from src.data_loader.providers import SQLitePriceProvider
from src.data_loader.validator import normalize_price_frame, validate_data
from src.database.connection import get_db
from src.database.schema import create_schema
from src.utils import validate_asset_id


def validate_file(price_file: str) -> bool:
    """입력 파일 검증"""
    if not Path(price_file).exists():
        print(f"[ERROR] File not found: {price_file}")
        return False
    return True


def load_price_file(price_file: str) -> dict:
    """
    CSV 로드 후 자산별 DataFrame 분리

    잘못된 자산 ID / 검증 실패 자산은 건너뛰고 경고 출력
    """
    raw = pd.read_csv(price_file)
    missing = [c for c in ('asset_id', 'date', 'price') if c not in raw.columns]
    if missing:
        raise PriceDataError(f"missing columns in {price_file}: {missing}")

    frames = {}
    for asset_id, group in raw.groupby('asset_id'):
        asset_id = str(asset_id)
        if not validate_asset_id(asset_id):
            print(f"[WARN] Invalid asset id skipped: {asset_id!r}")
            continue
        try:
            frames[asset_id] = normalize_price_frame(group.sort_values('date'), asset_id)
        except PriceDataError as e:
            print(f"[WARN] {e}")
    return frames


def main():
    parser = argparse.ArgumentParser(description='가격 CSV를 SQLite 가격 DB에 적재')
    parser.add_argument('price_file', help='가격 CSV 경로 (asset_id, date, price[, volume])')
    parser.add_argument('--db', help='SQLite 가격 DB 경로 (기본: data/processed/price_data.db)')
    parser.add_argument('--dry-run', action='store_true', help='DB 저장 없이 검증만 수행')
    args = parser.parse_args()

    if not validate_file(args.price_file):
        sys.exit(1)

    config = load_config(env_file=str(project_root / '.env'), cli_overrides=vars(args))
    db_path = config['database']['db_path']

    print("=" * 60)
    print("Price Data Load")
    print("=" * 60)

    try:
        frames = load_price_file(args.price_file)
    except PriceDataError as e:
        print(f"[ERROR] {e}")
        sys.exit(1)

    total_rows = sum(len(df) for df in frames.values())
    print(f"\n[INFO] Assets: {len(frames)}, Rows: {total_rows:,}")

    if args.dry_run:
        print("[OK] Dry run complete (nothing written)")
        return

    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    with get_db(db_path) as conn:
        create_schema(conn)
        provider = SQLitePriceProvider(conn)
        loaded = 0
        for asset_id, df in tqdm(frames.items(), total=len(frames), desc="Loading"):
            loaded += provider.save_prices(asset_id, df)

        print(f"\n[OK] Loaded {loaded:,} rows into {db_path}\n")
        validate_data(conn)


if __name__ == '__main__':
    main()
