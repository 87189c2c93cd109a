"""
백테스팅 CLI 도구

백테스트 실행, 결과 출력, CSV 저장, 파라미터 최적화, 전략 비교

Usage:
    # SQLite 가격 DB로 모멘텀 전략 실행
    python scripts/analysis/backtest_runner.py --assets AAPL MSFT --start 2024-01-02 --end 2024-12-31

    # CSV 가격 파일 (asset_id, date, price[, volume])
    python scripts/analysis/backtest_runner.py --csv data/prices.csv --assets AAPL MSFT

    # 평균회귀 전략, 주간 리밸런싱
    python scripts/analysis/backtest_runner.py --strategy mean_reversion --rebalance weekly --assets AAPL

    # 벤치마크 비교
    python scripts/analysis/backtest_runner.py --assets AAPL MSFT --benchmark SPY

    # 스마트 베타 (팩터 점수 CSV: date, asset_id, <factor>...)
    python scripts/analysis/backtest_runner.py --strategy smart_beta --assets AAPL MSFT \\
        --factor-scores data/factors.csv --factor-weights value=0.6 quality=0.4

    # 거래 내역 / 일별 가치 CSV 저장
    python scripts/analysis/backtest_runner.py --assets AAPL --save-csv output/trades.csv \\
        --save-daily-values output/daily.csv

    # Optuna 최적화 (lookback/threshold)
    python scripts/analysis/backtest_runner.py --assets AAPL --optimize --n-trials 100 --metric calmar_ratio

    # 4개 전략 병렬 비교
    python scripts/analysis/backtest_runner.py --assets AAPL MSFT --compare --workers 4
"""

import argparse
import logging
import sys
from datetime import date
from pathlib import Path

import pandas as pd
from tqdm import tqdm

# 프로젝트 루트 경로 추가
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

from src.config import load_config
from src.utils import setup_logging
from src.database.connection import get_connection
from src.data_loader.providers import InMemoryPriceProvider, SQLitePriceProvider
from src.backtesting.engine import (
    BacktestConfig, BacktestEngine, BacktestResult, parse_config_date,
)
from src.backtesting.errors import BacktestError
from src.backtesting.metrics import PerformanceMetrics
from src.backtesting.optimizer import OptunaOptimizer
from src.backtesting.parallel import BacktestJob, run_backtests
from src.backtesting.signals import STRATEGY_REGISTRY, FrameFactorScores, Strategy

logger = logging.getLogger(__name__)


def print_results(result: BacktestResult, var_levels=(0.95, 0.99)):
    """백테스트 결과 출력"""
    perf = result.performance
    trade_report = result.trade_report
    portfolio = result.portfolio

    print(f"\n{'='*80}")
    print(f"📊 백테스트 결과 요약 ({result.config.strategy.name})")
    print(f"{'='*80}\n")

    if result.cancelled:
        print("[WARN] 백테스트가 중간에 취소되었습니다.\n")

    # 기본 정보
    print(f"[기본 정보]")
    print(f"초기 자본금: {portfolio.initial_capital:,.0f}")
    print(f"최종 자본금: {perf.final_value:,.0f}")
    print(f"총 수익률: {perf.total_return * 100:+.2f}%")
    print(f"연환산 수익률: {perf.annualized_return * 100:+.2f}%")
    print(f"거래일: {perf.trading_days}일\n")

    # 리스크 지표
    print(f"[리스크 지표]")
    print(f"변동성: {perf.volatility * 100:.2f}%")
    print(f"최대 낙폭(MDD): {perf.max_drawdown * 100:.2f}%")
    if result.drawdown is not None and result.drawdown.worst_drawdowns:
        worst = result.drawdown.worst_drawdowns[0]
        recovery = worst.recovery_date or '미회복'
        print(f"  └─ {worst.start_date} ~ {worst.trough_date} (회복: {recovery})")
    print(f"샤프 비율: {perf.sharpe_ratio:.2f}")
    print(f"칼마 비율: {perf.calmar_ratio:.2f}")
    if result.risk is not None:
        risk = result.risk
        print(f"소르티노 비율: {risk.sortino_ratio:.2f}")
        metrics = PerformanceMetrics(result.history, result.trades)
        for level in var_levels:
            var = metrics.value_at_risk(1 - level)
            cvar = metrics.conditional_value_at_risk(1 - level)
            print(f"VaR {level:.0%}: {var * 100:.2f}% | CVaR: {cvar * 100:.2f}%")
        print(f"왜도: {risk.skewness:.2f} | 초과 첨도: {risk.kurtosis:.2f} | 안정성: {risk.stability:.2f}")
    print()

    # 벤치마크
    if perf.beta is not None:
        print(f"[벤치마크: {result.config.benchmark_asset_id}]")
        print(f"베타: {perf.beta:.2f} | 알파(일): {perf.alpha * 100:+.4f}% | "
              f"정보 비율: {perf.information_ratio:.2f}\n")

    # 거래 통계
    if result.trades:
        print(f"[거래 통계]")
        print(f"총 거래 횟수: {trade_report.total_trades}건 "
              f"(매수 {trade_report.buy_trades} / 매도 {trade_report.sell_trades})")
        print(f"승률: {perf.win_rate * 100:.1f}%")
        print(f"Profit Factor: {perf.profit_factor:.2f}")
        print(f"총 수수료: {trade_report.total_commission:,.0f} | 총 슬리피지: {trade_report.total_slippage:,.0f}")
        print(f"회전율: {trade_report.turnover:.2f} | 평균 거래 금액: {trade_report.average_trade_value:,.0f}")
        print(f"최대 연속 손실: {trade_report.max_consecutive_losses}회")
    else:
        print("[경고] 거래가 없습니다!")

    if trade_report.skipped_orders:
        reasons = ', '.join(f"{k} {v}건" for k, v in trade_report.skipped_by_reason.items())
        print(f"미체결 주문: {trade_report.skipped_orders}건 ({reasons})")

    print(f"\n{'='*80}\n")


def save_trades_to_csv(trades, filepath: str):
    """거래 내역 CSV 저장"""
    if not trades:
        print("[WARN] 저장할 거래가 없습니다.")
        return

    Path(filepath).parent.mkdir(parents=True, exist_ok=True)
    df = pd.DataFrame([t.to_dict() for t in trades])
    df.to_csv(filepath, index=False, encoding='utf-8-sig')
    print(f"\n✅ 거래 내역 저장: {filepath}")


def parse_factor_weights(items):
    """['value=0.6', 'quality=0.4'] → {'value': 0.6, 'quality': 0.4}"""
    weights = {}
    for item in items or []:
        name, sep, value = item.partition('=')
        if not sep:
            raise argparse.ArgumentTypeError(f"factor weight must be name=value, got: {item}")
        weights[name] = float(value)
    return weights


def build_strategy(args, config: dict, strategy_type: str = None) -> Strategy:
    strategy_type = strategy_type or args.strategy
    parameters = dict(config['strategies'].get(strategy_type, {}))
    if args.lookback is not None:
        parameters['lookback'] = args.lookback
    if args.threshold is not None:
        parameters['threshold'] = args.threshold
    if args.factor_weights:
        parameters['factor_weights'] = parse_factor_weights(args.factor_weights)

    return Strategy(
        type=strategy_type,
        universe=list(args.assets),
        parameters=parameters,
        rebalance_frequency=config['backtest']['rebalance_frequency'],
    )


def load_price_data(args, config: dict) -> dict:
    """가격 데이터 로드 (CSV 우선, 없으면 SQLite)"""
    asset_ids = list(args.assets)
    benchmark = config['backtest']['benchmark_asset_id']
    if benchmark and benchmark not in asset_ids:
        asset_ids.append(benchmark)

    start = parse_config_date(args.start, 'start_date') or date(1900, 1, 1)
    end = parse_config_date(args.end, 'end_date') or date(2999, 12, 31)

    if args.csv:
        provider = InMemoryPriceProvider.from_csv(args.csv)
        return provider.get_price_data(asset_ids, start, end)

    conn = get_connection(config['database']['db_path'])
    try:
        provider = SQLitePriceProvider(conn)
        return provider.get_price_data(asset_ids, start, end)
    finally:
        conn.close()


def run_single(args, config: dict, price_data: dict, factor_provider):
    """단일 백테스트 실행 (tqdm 진행 표시)"""
    strategy = build_strategy(args, config)
    backtest_config = BacktestConfig.from_dict(config, strategy)
    engine = BacktestEngine(backtest_config, price_data, factor_provider=factor_provider)

    with tqdm(total=100, desc="Backtest", disable=args.quiet,
              bar_format='{l_bar}{bar}| {n:.0f}%') as pbar:
        def on_progress(pct):
            pbar.update(pct - pbar.n)

        result = engine.run(progress_callback=on_progress, verbose=not args.quiet)

    print_results(result, var_levels=config['risk']['var_levels'])

    if args.save_csv:
        save_trades_to_csv(result.trades, args.save_csv)

    if args.save_skipped and result.skipped_orders:
        Path(args.save_skipped).parent.mkdir(parents=True, exist_ok=True)
        pd.DataFrame([s.to_dict() for s in result.skipped_orders]).to_csv(
            args.save_skipped, index=False, encoding='utf-8-sig')
        print(f"✅ 미체결 주문 저장: {args.save_skipped}")

    # 일별 포트폴리오 가치 CSV 저장
    if args.save_daily_values:
        Path(args.save_daily_values).parent.mkdir(parents=True, exist_ok=True)
        result.daily_values().to_csv(args.save_daily_values, index=False, encoding='utf-8-sig')
        print(f"✅ 일별 포트폴리오 가치 저장: {args.save_daily_values}")


def run_optimization(args, config: dict, price_data: dict, factor_provider):
    """Optuna 최적화 실행"""
    strategy = build_strategy(args, config)
    base_config = BacktestConfig.from_dict(config, strategy)

    optimizer = OptunaOptimizer(
        base_config=base_config,
        price_data=price_data,
        study_storage=config['optimization']['study_storage'],
        factor_provider=factor_provider,
    )

    n_trials = config['optimization']['n_trials']
    metric = config['optimization']['metric']
    with tqdm(total=n_trials, desc="Optuna", disable=args.quiet) as pbar:
        def on_progress(current, total):
            pbar.update(current - pbar.n)

        result = optimizer.optimize(n_trials=n_trials, metric=metric, verbose=not args.quiet,
                                    progress_callback=on_progress, reset=args.reset_study)
    optimizer.print_results(result, metric=metric)


def run_comparison(args, config: dict, price_data: dict, factor_provider):
    """등록된 전략 전체 비교 (smart_beta 는 팩터 점수가 있을 때만)"""
    strategy_types = [t for t in sorted(STRATEGY_REGISTRY)
                      if t != 'smart_beta' or factor_provider is not None]
    jobs = []
    for strategy_type in strategy_types:
        strategy = build_strategy(args, config, strategy_type)
        kwargs = BacktestConfig.from_dict(config, strategy).to_kwargs()
        kwargs.pop('strategy')
        kwargs.pop('initial_capital')
        if strategy_type == 'smart_beta':
            kwargs['factor_provider'] = factor_provider
        jobs.append(BacktestJob(strategy=strategy, price_data=price_data,
                                initial_capital=config['backtest']['initial_capital'],
                                options=kwargs, label=strategy_type))

    results = run_backtests(jobs, workers=config['optimization']['workers'], verbose=not args.quiet)

    rows = [{'strategy': job.label, **result.summary()} for job, result in zip(jobs, results)]
    summary = pd.DataFrame(rows)[['strategy', 'total_return', 'annualized_return', 'volatility',
                                  'sharpe_ratio', 'max_drawdown', 'calmar_ratio', 'total_trades']]
    print(f"\n{'='*80}")
    print(f"📊 전략 비교")
    print(f"{'='*80}")
    print(summary.to_string(index=False, float_format=lambda v: f"{v:.4f}"))
    print()

    if args.save_csv:
        Path(args.save_csv).parent.mkdir(parents=True, exist_ok=True)
        summary.to_csv(args.save_csv, index=False, encoding='utf-8-sig')
        print(f"✅ 비교 결과 저장: {args.save_csv}")


def main():
    parser = argparse.ArgumentParser(
        description='포트폴리오 백테스팅 CLI 도구',
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    # 데이터
    parser.add_argument('--assets', nargs='+', required=True, help='유니버스 자산 ID 목록')
    parser.add_argument('--csv', help='가격 CSV 경로 (asset_id, date, price[, volume])')
    parser.add_argument('--db', help='SQLite 가격 DB 경로 (기본: data/processed/price_data.db)')
    parser.add_argument('--start', help='시작일 (YYYY-MM-DD)')
    parser.add_argument('--end', help='종료일 (YYYY-MM-DD)')
    parser.add_argument('--benchmark', help='벤치마크 자산 ID')

    # 전략
    parser.add_argument('--strategy', default='momentum',
                        help='전략 타입 (momentum, mean_reversion, buy_and_hold, smart_beta)')
    parser.add_argument('--rebalance', choices=['daily', 'weekly', 'monthly', 'quarterly'],
                        help='리밸런싱 주기 (기본: monthly)')
    parser.add_argument('--lookback', type=int, help='lookback 기간 (거래일)')
    parser.add_argument('--threshold', type=float, help='시그널 임계값')
    parser.add_argument('--factor-weights', nargs='+', help='스마트 베타 팩터 가중치 (name=weight ...)')
    parser.add_argument('--factor-scores', help='팩터 점수 CSV (date, asset_id, <factor>...)')

    # 포트폴리오 / 비용
    parser.add_argument('--capital', type=float, help='초기 자본금 (기본: 100,000)')
    parser.add_argument('--commission', type=float, help='수수료율 (기본: 0.02)')
    parser.add_argument('--slippage', type=float, help='슬리피지율 (기본: 0.005)')
    parser.add_argument('--no-costs', action='store_true', help='거래 비용 제외')
    parser.add_argument('--buy-fraction', type=float, help='매수 1건당 포트폴리오 비율 (기본: 0.10)')
    parser.add_argument('--sell-fraction', type=float, help='매도 1건당 보유 수량 비율 (기본: 0.50)')
    parser.add_argument('--fixed-notional', type=float, help='고정 매수 금액')
    parser.add_argument('--risk-free-rate', type=float, help='무위험 수익률 (연율)')

    # 출력 설정
    parser.add_argument('--save-csv', help='거래 내역 CSV 저장 경로')
    parser.add_argument('--save-daily-values', help='일별 포트폴리오 가치 CSV 저장 경로')
    parser.add_argument('--save-skipped', help='미체결 주문 CSV 저장 경로')
    parser.add_argument('--quiet', action='store_true', help='진행 상황 출력 안함')
    parser.add_argument('--log-level', help='로그 레벨 (DEBUG, INFO, WARNING)')

    # 최적화 / 비교
    parser.add_argument('--optimize', action='store_true', help='Optuna 파라미터 최적화 실행')
    parser.add_argument('--n-trials', type=int, help='Optuna Trial 수 (기본: 50)')
    parser.add_argument('--metric', help='최적화 평가 지표 (기본: sharpe_ratio)')
    parser.add_argument('--reset-study', action='store_true', help='저장된 study 초기화')
    parser.add_argument('--compare', action='store_true', help='등록된 전략 전체 비교')
    parser.add_argument('--workers', type=int, help='병렬 처리 worker 수 (기본: 1)')

    args = parser.parse_args()

    config = load_config(env_file=str(project_root / '.env'), cli_overrides=vars(args))
    setup_logging(config['logging']['level'])

    factor_provider = None
    if args.factor_scores:
        factor_provider = FrameFactorScores(pd.read_csv(args.factor_scores))

    try:
        price_data = load_price_data(args, config)

        if args.optimize:
            run_optimization(args, config, price_data, factor_provider)
        elif args.compare:
            run_comparison(args, config, price_data, factor_provider)
        else:
            run_single(args, config, price_data, factor_provider)
    except BacktestError as e:
        print(f"[ERROR] {e}")
        sys.exit(1)


if __name__ == '__main__':
    main()
