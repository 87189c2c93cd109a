"""
백테스트 전역 설정 파일

초기 자본금, 거래 비용, 주문 수량 규칙, 전략별 기본 파라미터 등을 중앙 관리
CLI 오버라이드 지원 (argparse → .env → 기본값 순서)
"""

import copy
import os
from typing import Any, Dict, Optional

from dotenv import load_dotenv


# 기본 설정값 (Baseline)
DEFAULT_CONFIG = {
    # ============================================================================
    # 백테스트 기본값
    # ============================================================================
    'backtest': {
        'initial_capital': 100_000,
        'rebalance_frequency': 'monthly',

        # 무위험 수익률 (연율, Sharpe/alpha 계산용)
        'risk_free_rate': 0.0,

        # 벤치마크 자산 (None = 비교 안 함)
        'benchmark_asset_id': None,

        'start_date': None,
        'end_date': None,
        'include_risk_metrics': True,
        'include_drawdown_analysis': True,
    },

    # ============================================================================
    # 거래 비용 (체결 금액 대비)
    # ============================================================================
    'costs': {
        'commission_rate': 0.02,
        'slippage_rate': 0.005,
        'include_transaction_costs': True,
    },

    # ============================================================================
    # 주문 수량 규칙
    # ============================================================================
    'execution': {
        # 매수 1건당 포트폴리오 가치 대비 비율
        'buy_fraction': 0.10,

        # 매도 1건당 보유 수량 대비 비율 (최소 1주)
        'sell_fraction': 0.50,

        # 설정 시 buy_fraction 대신 고정 금액 매수
        'fixed_buy_notional': None,
    },

    # ============================================================================
    # 전략별 기본 파라미터
    # ============================================================================
    'strategies': {
        'momentum': {'lookback': 20, 'threshold': 0.05},
        'mean_reversion': {'lookback': 30, 'threshold': 2.0},
        'buy_and_hold': {},
        'smart_beta': {'threshold': 0.5},
    },

    # ============================================================================
    # 리스크 / 최적화
    # ============================================================================
    'risk': {
        'var_levels': [0.95, 0.99],
    },
    'optimization': {
        'n_trials': 50,
        'metric': 'sharpe_ratio',
        'workers': 1,
        'study_storage': None,
    },

    # ============================================================================
    # 기타
    # ============================================================================
    'database': {
        'db_path': 'data/processed/price_data.db',
    },
    'logging': {
        'level': 'INFO',
    },
}

_VALID_FREQUENCIES = ['daily', 'weekly', 'monthly', 'quarterly']
_VALID_LOG_LEVELS = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']


def load_config(env_file: Optional[str] = '.env',
                cli_overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    3계층 설정 로딩 (우선순위: CLI > .env > 기본값)

    Args:
        env_file: 환경변수 파일 경로 (.env)
        cli_overrides: CLI 인자로 전달된 오버라이드 (argparse의 vars(args))

    Returns:
        병합된 최종 설정 딕셔너리

    Example:
        >>> parser.add_argument('--capital', type=float)
        >>> args = parser.parse_args()
        >>> config = load_config(cli_overrides=vars(args))
    """
    # 1) 기본값 복사
    config = copy.deepcopy(DEFAULT_CONFIG)

    # 2) .env 파일 로드 (존재할 경우)
    if env_file and os.path.exists(env_file):
        load_dotenv(env_file)
    _apply_env_overrides(config)

    # 3) CLI 오버라이드 적용
    if cli_overrides:
        _apply_cli_overrides(config, cli_overrides)

    # 4) 설정값 검증
    try:
        _validate_config(config)
    except ValueError as e:
        print(f"[ERROR] Configuration validation failed: {e}")
        raise

    return config


def _apply_env_overrides(config: Dict[str, Any]) -> None:
    """
    환경변수 매핑 (BACKTEST_* 접두사)

    - BACKTEST_INITIAL_CAPITAL → backtest.initial_capital
    - BACKTEST_RISK_FREE_RATE → backtest.risk_free_rate
    - BACKTEST_BENCHMARK → backtest.benchmark_asset_id
    - BACKTEST_COMMISSION_RATE / BACKTEST_SLIPPAGE_RATE → costs.*
    - BACKTEST_DB_PATH → database.db_path
    - BACKTEST_LOG_LEVEL → logging.level
    """
    if os.getenv('BACKTEST_INITIAL_CAPITAL'):
        config['backtest']['initial_capital'] = float(os.getenv('BACKTEST_INITIAL_CAPITAL'))

    if os.getenv('BACKTEST_RISK_FREE_RATE'):
        config['backtest']['risk_free_rate'] = float(os.getenv('BACKTEST_RISK_FREE_RATE'))

    if os.getenv('BACKTEST_BENCHMARK'):
        config['backtest']['benchmark_asset_id'] = os.getenv('BACKTEST_BENCHMARK')

    if os.getenv('BACKTEST_COMMISSION_RATE'):
        config['costs']['commission_rate'] = float(os.getenv('BACKTEST_COMMISSION_RATE'))

    if os.getenv('BACKTEST_SLIPPAGE_RATE'):
        config['costs']['slippage_rate'] = float(os.getenv('BACKTEST_SLIPPAGE_RATE'))

    if os.getenv('BACKTEST_DB_PATH'):
        config['database']['db_path'] = os.getenv('BACKTEST_DB_PATH')

    if os.getenv('BACKTEST_LOG_LEVEL'):
        config['logging']['level'] = os.getenv('BACKTEST_LOG_LEVEL').upper()


def _apply_cli_overrides(config: Dict[str, Any], cli_args: Dict[str, Any]) -> None:
    """
    CLI 인자를 config 딕셔너리에 병합

    지원하는 오버라이드:
    - --capital → backtest.initial_capital
    - --rebalance → backtest.rebalance_frequency
    - --risk-free-rate → backtest.risk_free_rate
    - --benchmark → backtest.benchmark_asset_id
    - --start / --end → backtest.start_date / end_date
    - --commission / --slippage → costs.*
    - --no-costs → costs.include_transaction_costs
    - --buy-fraction / --sell-fraction / --fixed-notional → execution.*
    - --n-trials / --metric / --workers → optimization.*
    - --db → database.db_path
    - --log-level → logging.level
    """
    mapping = {
        'capital': ('backtest', 'initial_capital'),
        'rebalance': ('backtest', 'rebalance_frequency'),
        'risk_free_rate': ('backtest', 'risk_free_rate'),
        'benchmark': ('backtest', 'benchmark_asset_id'),
        'start': ('backtest', 'start_date'),
        'end': ('backtest', 'end_date'),
        'commission': ('costs', 'commission_rate'),
        'slippage': ('costs', 'slippage_rate'),
        'buy_fraction': ('execution', 'buy_fraction'),
        'sell_fraction': ('execution', 'sell_fraction'),
        'fixed_notional': ('execution', 'fixed_buy_notional'),
        'n_trials': ('optimization', 'n_trials'),
        'metric': ('optimization', 'metric'),
        'workers': ('optimization', 'workers'),
        'db': ('database', 'db_path'),
        'log_level': ('logging', 'level'),
    }

    for arg_name, (section, key) in mapping.items():
        value = cli_args.get(arg_name)
        if value is not None:
            config[section][key] = value

    # 거래 비용 비활성화
    if cli_args.get('no_costs'):
        config['costs']['include_transaction_costs'] = False


def _validate_config(config: Dict[str, Any]) -> None:
    """
    설정값 검증 (입력 오류 방지)

    Args:
        config: 검증할 설정 딕셔너리

    Raises:
        ValueError: 유효하지 않은 설정값

    Validates:
        - initial_capital > 0
        - rebalance_frequency: daily/weekly/monthly/quarterly
        - 비용 비율: 0 ≤ rate < 1
        - buy/sell_fraction: 0 < fraction ≤ 1
        - 전략 lookback ≥ 1, threshold ≥ 0
        - n_trials, workers ≥ 1
        - var_levels: 0 < level < 1
        - logging level
    """
    # 1. 백테스트 기본값
    capital = config['backtest']['initial_capital']
    if not isinstance(capital, (int, float)) or capital <= 0:
        raise ValueError(
            f"Invalid initial_capital: {capital}. Must be a positive number."
        )

    frequency = config['backtest']['rebalance_frequency']
    if frequency not in _VALID_FREQUENCIES:
        raise ValueError(
            f"Invalid rebalance_frequency: '{frequency}'. "
            f"Must be one of: {', '.join(_VALID_FREQUENCIES)}"
        )

    # 2. 거래 비용
    for key in ('commission_rate', 'slippage_rate'):
        rate = config['costs'][key]
        if not isinstance(rate, (int, float)) or not (0 <= rate < 1):
            raise ValueError(f"Invalid {key}: {rate}. Must be in [0, 1).")

    # 3. 주문 수량 규칙
    for key in ('buy_fraction', 'sell_fraction'):
        fraction = config['execution'][key]
        if not isinstance(fraction, (int, float)) or not (0 < fraction <= 1):
            raise ValueError(f"Invalid {key}: {fraction}. Must be in (0, 1].")

    notional = config['execution'].get('fixed_buy_notional')
    if notional is not None and (not isinstance(notional, (int, float)) or notional <= 0):
        raise ValueError(f"Invalid fixed_buy_notional: {notional}. Must be positive.")

    # 4. 전략 기본 파라미터
    for strategy_type, params in config['strategies'].items():
        lookback = params.get('lookback')
        if lookback is not None and (not isinstance(lookback, int) or lookback < 1):
            raise ValueError(
                f"Invalid lookback for '{strategy_type}': {lookback}. Must be an integer >= 1."
            )
        threshold = params.get('threshold')
        if threshold is not None and threshold < 0:
            raise ValueError(
                f"Invalid threshold for '{strategy_type}': {threshold}. Must be non-negative."
            )

    # 5. 리스크 / 최적화
    for level in config['risk']['var_levels']:
        if not 0 < level < 1:
            raise ValueError(f"Invalid VaR level: {level}. Must be in (0, 1).")

    for key in ('n_trials', 'workers'):
        value = config['optimization'][key]
        if not isinstance(value, int) or value < 1:
            raise ValueError(f"Invalid {key}: {value}. Must be a positive integer.")

    # 6. 로깅
    level = config['logging']['level']
    if level not in _VALID_LOG_LEVELS:
        raise ValueError(
            f"Invalid logging level: '{level}'. "
            f"Must be one of: {', '.join(_VALID_LOG_LEVELS)}"
        )
