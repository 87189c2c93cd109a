"""
배치 백테스트 모듈

서로 독립인 백테스트(전략/파라미터/유니버스 조합)를 프로세스 단위로 병렬 실행.
각 실행은 자기 Portfolio 만 소유하므로 공유 상태나 잠금이 없다.
"""

from dataclasses import dataclass, field
from multiprocessing import Pool
from typing import Any, Dict, List, Optional, Sequence, Union

import pandas as pd

from .engine import BacktestResult, run_backtest
from .signals import Strategy


@dataclass
class BacktestJob:
    """
    단일 백테스트 작업 (pickle 가능해야 함)

    Args:
        strategy: Strategy 또는 dict
        price_data: asset_id → 가격 DataFrame
        initial_capital: 초기 자본금
        options: run_backtest options (progress_callback/cancel_event 는 프로세스 경계를 넘지 못함)
        label: 결과 식별용 이름
    """
    strategy: Union[Strategy, Dict[str, Any]]
    price_data: Dict[str, pd.DataFrame]
    initial_capital: float = 100_000
    options: Dict[str, Any] = field(default_factory=dict)
    label: Optional[str] = None


# ============================================================================
# 모듈 레벨 worker 함수
# ============================================================================

def _run_backtest_worker(job: BacktestJob) -> BacktestResult:
    """
    단일 작업 실행

    multiprocessing.Pool에서 호출하므로 모듈 레벨에 정의 (pickle 가능)
    """
    return run_backtest(job.strategy, job.price_data, job.initial_capital, options=job.options)


def run_backtests(jobs: Sequence[BacktestJob], workers: int = 1,
                  verbose: bool = False) -> List[BacktestResult]:
    """
    여러 백테스트 실행 (입력 순서 유지)

    Args:
        jobs: BacktestJob 리스트
        workers: 프로세스 수 (1이면 순차 실행)
        verbose: 진행 상황 출력 여부

    Returns:
        jobs 와 같은 순서의 BacktestResult 리스트

    Raises:
        ValueError: workers < 1
    """
    if workers < 1:
        raise ValueError(f"workers must be >= 1, got: {workers}")

    jobs = list(jobs)
    if not jobs:
        return []

    if workers > 1 and len(jobs) > 1:
        if verbose:
            print(f"  병렬 실행 중... ({workers} workers, {len(jobs)}개 작업)")
        with Pool(processes=min(workers, len(jobs))) as pool:
            results = pool.map(_run_backtest_worker, jobs)
    else:
        results = []
        for i, job in enumerate(jobs):
            if verbose:
                print(f"[{i+1}/{len(jobs)}] {job.label or i}")
            results.append(_run_backtest_worker(job))

    if verbose:
        print(f"  완료: {len(results)}개 작업")

    return results
