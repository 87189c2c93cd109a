"""
Unit tests for src/utils.py

Tests input validation and conversion helpers:
- validate_asset_id()
- validate_date_format()
- parse_date()
- to_decimal()
"""

from datetime import date, datetime
from decimal import Decimal

import numpy as np
import pytest
from src.utils import (
    parse_date,
    to_decimal,
    validate_asset_id,
    validate_date_format,
)


class TestValidateAssetId:
    """Test validate_asset_id() function"""

    def test_valid_ids(self):
        """Tickers and numeric codes"""
        assert validate_asset_id('AAPL') is True
        assert validate_asset_id('005930') is True  # 삼성전자
        assert validate_asset_id('BRK.B') is True
        assert validate_asset_id('BTC-USD') is True

    def test_invalid_ids(self):
        assert validate_asset_id('') is False
        assert validate_asset_id('-AAPL') is False
        assert validate_asset_id('AA PL') is False
        assert validate_asset_id('A' * 33) is False

    def test_sql_injection_attempts(self):
        """SQL injection attempts"""
        assert validate_asset_id("AAPL'); DROP TABLE daily_prices; --") is False
        assert validate_asset_id("MSFT' OR '1'='1") is False

    def test_invalid_types(self):
        assert validate_asset_id(123456) is False
        assert validate_asset_id(None) is False
        assert validate_asset_id(['AAPL']) is False


class TestDates:
    """Test validate_date_format() / parse_date()"""

    def test_valid_format(self):
        assert validate_date_format('2024-02-10') is True

    def test_invalid_format(self):
        assert validate_date_format('2024/02/10') is False
        assert validate_date_format('20240210') is False
        assert validate_date_format('2024-02-30') is False
        assert validate_date_format(None) is False

    def test_parse_date(self):
        assert parse_date('2024-03-01') == date(2024, 3, 1)
        assert parse_date(date(2024, 3, 1)) == date(2024, 3, 1)
        assert parse_date(datetime(2024, 3, 1, 15, 30)) == date(2024, 3, 1)

    def test_parse_date_invalid(self):
        with pytest.raises(ValueError):
            parse_date('03/01/2024')


class TestToDecimal:
    """Test to_decimal() function"""

    def test_float_uses_shortest_repr(self):
        assert to_decimal(0.1) == Decimal('0.1')
        assert to_decimal(185.64) == Decimal('185.64')

    def test_int_and_str(self):
        assert to_decimal(100_000) == Decimal('100000')
        assert to_decimal('12.5') == Decimal('12.5')

    def test_decimal_passthrough(self):
        value = Decimal('1.23')
        assert to_decimal(value) is value

    def test_numpy_scalars(self):
        assert to_decimal(np.float64(0.25)) == Decimal('0.25')
        assert to_decimal(np.int64(7)) == Decimal('7')
