"""
유틸리티 함수 모듈

입력 검증, 금액 변환(Decimal), 로깅 설정 헬퍼 제공
"""

import logging
import numbers
import re
from datetime import date, datetime
from decimal import Decimal
from typing import Union

# 자산 ID: 영문/숫자로 시작, 이후 영문/숫자/.-_ (최대 32자)
_ASSET_ID_PATTERN = re.compile(r'^[A-Za-z0-9][A-Za-z0-9._-]{0,31}$')

LOG_FORMAT = '%(asctime)s [%(levelname)s] %(name)s: %(message)s'


def validate_asset_id(asset_id: str) -> bool:
    """
    자산 ID 검증 (SQL 인젝션 방지)

    티커/종목코드 형태만 허용
    예: '005930', 'AAPL', 'BRK.B', 'BTC-USD'

    Args:
        asset_id: 검증할 자산 ID

    Returns:
        bool: 유효하면 True, 아니면 False

    Examples:
        >>> validate_asset_id('AAPL')
        True
        >>> validate_asset_id('005930')
        True
        >>> validate_asset_id('')
        False
        >>> validate_asset_id("AAPL'); DROP TABLE daily_prices; --")
        False
    """
    if not isinstance(asset_id, str):
        return False

    return bool(_ASSET_ID_PATTERN.match(asset_id))


def validate_date_format(date_str: str) -> bool:
    """
    날짜 형식 검증 (YYYY-MM-DD)

    Examples:
        >>> validate_date_format('2024-02-10')
        True
        >>> validate_date_format('2024/02/10')
        False
    """
    if not isinstance(date_str, str):
        return False

    if not re.match(r'^\d{4}-\d{2}-\d{2}$', date_str):
        return False

    try:
        datetime.strptime(date_str, '%Y-%m-%d')
    except ValueError:
        return False
    return True


def parse_date(value: Union[str, date, datetime]) -> date:
    """문자열/datetime을 date로 변환"""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not validate_date_format(value):
        raise ValueError(f"Invalid date: {value!r}. Expected YYYY-MM-DD")
    return datetime.strptime(value, '%Y-%m-%d').date()


def to_decimal(value: Union[int, float, str, Decimal]) -> Decimal:
    """
    금액/가격을 Decimal로 변환

    float는 repr 문자열을 거쳐 변환 (0.1 → Decimal('0.1'), 이진 오차 유입 방지)
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, numbers.Integral):
        return Decimal(int(value))
    if isinstance(value, numbers.Real):
        return Decimal(repr(float(value)))
    return Decimal(value)


def setup_logging(level: str = 'INFO') -> None:
    """스크립트용 루트 로거 설정"""
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO),
                        format=LOG_FORMAT)
