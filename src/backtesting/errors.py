"""
백테스트 예외 정의

- ConfigurationError: 실행 전 설정 오류 (치명적, 상태 생성 전 즉시 발생)
- PriceDataError: 가격 시계열 무결성 위반 (실행 전 검증)

거래 단위의 복구 가능한 상황(현금 부족, 미보유 매도 등)은 예외가 아니라
SkippedOrder 기록으로 남긴다.
"""


class BacktestError(Exception):
    """백테스트 예외 기본 클래스"""


class ConfigurationError(BacktestError, ValueError):
    """잘못된 전략/자본금/유니버스 설정"""


class PriceDataError(BacktestError, ValueError):
    """가격 시계열 오류 (날짜 중복, 비정렬, 0 이하 가격 등)"""
