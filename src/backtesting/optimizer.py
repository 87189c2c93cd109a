"""
파라미터 최적화 모듈

OptunaOptimizer 클래스:
- Bayesian Optimization (전략 lookback/threshold 탐색)
- MedianPruner: 절반 기간 중간 평가로 나쁜 Trial 조기 중단
- Persistent Study: SQLite에 Trial 누적 저장
  (study_storage=None이면 인메모리 일회성 실행)
"""

import logging
from typing import Dict, Optional

import optuna
import pandas as pd
from optuna.pruners import MedianPruner

from .engine import BacktestConfig, BacktestEngine
from .errors import BacktestError
from .precomputer import MarketDataPrecomputer
from .signals import MEAN_REVERSION, MOMENTUM, SMART_BETA

logger = logging.getLogger(__name__)


# ============================================================================
# OptunaOptimizer 클래스 (Bayesian Optimization)
# ============================================================================

class OptunaOptimizer:
    """
    Optuna Bayesian Optimization 기반 전략 파라미터 최적화 클래스

    파라미터 공간 형식:
        {
            'lookback':  {'type': 'int',   'low': 5,    'high': 60},
            'threshold': {'type': 'float', 'low': 0.01, 'high': 0.20},
        }

    평가 지표는 PerformanceReport 필드명 ('sharpe_ratio', 'total_return', 'calmar_ratio' 등)
    """

    DEFAULT_PARAM_SPACE = {
        MOMENTUM: {
            'lookback':  {'type': 'int',   'low': 5,    'high': 60},
            'threshold': {'type': 'float', 'low': 0.01, 'high': 0.20},
        },
        MEAN_REVERSION: {
            'lookback':  {'type': 'int',   'low': 10,   'high': 90},
            'threshold': {'type': 'float', 'low': 0.5,  'high': 3.0},
        },
        SMART_BETA: {
            'threshold': {'type': 'float', 'low': 0.0,  'high': 1.0},
        },
    }

    def __init__(self, base_config: BacktestConfig, price_data: Dict[str, pd.DataFrame],
                 study_storage: Optional[str] = None, factor_provider=None):
        """
        Args:
            base_config: 기본 BacktestConfig (최적화 대상 외 파라미터)
            price_data: asset_id → 가격 DataFrame
            study_storage: Optuna study 저장 경로 (예: "sqlite:///data/optuna_studies.db")
                None이면 인메모리 (비지속)
            factor_provider: smart_beta 전략용 FactorScoreProvider
        """
        self.base_config = base_config
        self.price_data = price_data
        self.study_storage = study_storage
        self.factor_provider = factor_provider

    def default_param_space(self) -> dict:
        strategy_type = self.base_config.strategy.type
        if strategy_type not in self.DEFAULT_PARAM_SPACE:
            raise ValueError(f"no default parameter space for strategy type {strategy_type!r}")
        return self.DEFAULT_PARAM_SPACE[strategy_type]

    def _make_study_name(self, metric: str, dates) -> str:
        """기간+전략+메트릭 기반 고유 study 이름 생성"""
        strategy = self.base_config.strategy
        sd = dates[0].strftime('%Y%m%d')
        ed = dates[-1].strftime('%Y%m%d')
        return f"opt__{strategy.type}__{'-'.join(strategy.universe)}__{sd}__{ed}__{metric}"

    def _evaluate(self, params: dict, metric: str, market, end_date=None) -> float:
        """파라미터 조합 1회 백테스트 → 지표 값 (실패/무거래는 -inf)"""
        strategy = self.base_config.strategy.with_parameters(**params)
        overrides = {'strategy': strategy, 'include_risk_metrics': False,
                     'include_drawdown_analysis': False}
        if end_date is not None:
            overrides['end_date'] = end_date
        config = self.base_config.replace(**overrides)

        engine = BacktestEngine(config, self.price_data, factor_provider=self.factor_provider,
                                precomputed=market)
        result = engine.run()
        if not result.trades:
            return float('-inf')

        value = result.performance.to_dict().get(metric)
        if value is None:
            return float('-inf')
        return float(value)

    def _build_objective(self, param_space: dict, metric: str, market):
        """
        Optuna objective function 생성 (closure)

        MedianPruner 지원:
        - Step 0: 기간 절반 평가 → trial.report() → prune 판단
        - 통과 시: 전체 기간 평가 → 최종 값 반환
        """
        dates = market.trading_dates
        mid_date = dates[len(dates) // 2] if len(dates) > 1 else None

        def objective(trial):
            # 파라미터 샘플링
            params = {}
            for name, spec in param_space.items():
                if spec['type'] == 'int':
                    params[name] = trial.suggest_int(name, int(spec['low']), int(spec['high']))
                else:
                    params[name] = trial.suggest_float(name, spec['low'], spec['high'])

            try:
                # Step 0: 절반 기간 평가 → Pruning 판단
                if mid_date is not None:
                    intermediate = self._evaluate(params, metric, market, end_date=mid_date)
                    trial.report(intermediate, step=0)
                    if trial.should_prune():
                        raise optuna.TrialPruned()

                # 전체 기간 평가
                return self._evaluate(params, metric, market)

            except BacktestError as e:
                logger.warning("Trial %d failed: %s", trial.number, e)
                return float('-inf')

        return objective

    def optimize(self, param_space: Optional[dict] = None,
                 n_trials: int = 50,
                 metric: str = 'sharpe_ratio',
                 verbose: bool = True,
                 progress_callback=None,
                 reset: bool = False,
                 seed: Optional[int] = None) -> Optional[dict]:
        """
        Bayesian Optimization 실행

        Args:
            param_space: 탐색 파라미터 공간 (None이면 전략 타입별 DEFAULT_PARAM_SPACE)
            n_trials: 이번 실행에서 추가할 Trial 수
            metric: 평가 지표 (PerformanceReport 필드명)
            verbose: 진행 상황 출력 여부
            progress_callback: (current, total) 호출 콜백
            reset: True이면 기존 누적 Trial을 삭제하고 새로 시작
            seed: TPESampler 시드 (재현용)

        Returns:
            {
                'params': 전략 파라미터 딕셔너리 (기존 parameters + 최적값),
                metric: float (누적 전체 최고값),
                'total_complete': int,
                'total_pruned': int,
                'existing_before': int,
            }
            또는 None (완료 Trial 없음)
        """
        optuna.logging.set_verbosity(optuna.logging.WARNING)

        if param_space is None:
            param_space = self.default_param_space()

        # ── Precomputer 1회 실행 (모든 Trial 공유) ────────────────────────
        if progress_callback:
            progress_callback(0, n_trials)
        config = self.base_config
        extra = [config.benchmark_asset_id] if config.benchmark_asset_id else []
        market = MarketDataPrecomputer(
            self.price_data, config.strategy.universe, extra_assets=extra
        ).precompute(config.start_date, config.end_date, verbose=verbose)
        if not market.trading_dates:
            raise ValueError("no trading days to optimize over")

        pruner = MedianPruner(n_startup_trials=5, n_warmup_steps=0)
        sampler = optuna.samplers.TPESampler(seed=seed)
        study_name = self._make_study_name(metric, market.trading_dates)
        storage = self.study_storage

        # ── 기존 Study 초기화 (reset=True) ───────────────────────────────
        if reset and storage:
            try:
                optuna.delete_study(study_name=study_name, storage=storage)
            except KeyError:
                logger.info("No existing study %s to reset", study_name)

        # ── Study 생성 또는 기존 Study 로드 ──────────────────────────────
        if storage:
            study = optuna.create_study(
                study_name=study_name,
                storage=storage,
                direction='maximize',
                pruner=pruner,
                sampler=sampler,
                load_if_exists=True,
            )
        else:
            study = optuna.create_study(direction='maximize', pruner=pruner, sampler=sampler)

        existing_before = sum(
            1 for t in study.trials
            if t.state == optuna.trial.TrialState.COMPLETE
        )

        if verbose:
            print(f"\n{'='*60}")
            print(f"🔮 Optuna Study")
            if storage:
                print(f"Study: {study_name}")
                print(f"기존 누적 Trial: {existing_before}개 → 이번 추가: {n_trials}개")
            else:
                print(f"Trial: {n_trials}개 (인메모리)")
            print(f"기간: {market.trading_dates[0]} ~ {market.trading_dates[-1]} | 지표: {metric}")

        objective = self._build_objective(param_space, metric, market)
        trial_counter = [0]

        def _cb(study, trial):
            trial_counter[0] += 1
            if progress_callback:
                progress_callback(min(trial_counter[0], n_trials), n_trials)

        study.optimize(objective, n_trials=n_trials, show_progress_bar=False, callbacks=[_cb])

        # ── 누적 전체에서 최고 Trial 선택 ────────────────────────────────
        all_complete = [
            t for t in study.trials
            if t.state == optuna.trial.TrialState.COMPLETE and t.value is not None
        ]
        total_pruned = sum(
            1 for t in study.trials
            if t.state == optuna.trial.TrialState.PRUNED
        )

        if not all_complete:
            if verbose:
                print("\n[WARN] 완료된 Trial이 없습니다.")
            return None

        best_trial = max(all_complete, key=lambda t: t.value)

        best_params = dict(config.strategy.parameters)
        for name in param_space:
            if name in best_trial.params:
                best_params[name] = best_trial.params[name]

        if verbose:
            print(f"\n{'='*60}")
            print(f"✅ 완료! 누적 {len(all_complete)}개 Trial 중 최고값")
            print(f"최고 {metric}: {best_trial.value:.4f}")
            param_parts = [
                f"{k}={v:.3f}" if isinstance(v, float) else f"{k}={v}"
                for k, v in best_params.items()
                if k in param_space
            ]
            print(f"최적 파라미터: {' | '.join(param_parts)}")
            print(f"{'='*60}\n")

        return {
            'params': best_params,
            metric: best_trial.value,
            'total_complete': len(all_complete),
            'total_pruned': total_pruned,
            'existing_before': existing_before,
        }

    def print_results(self, result: Optional[dict], metric: str = 'sharpe_ratio'):
        """최적화 결과 출력"""
        if result is None:
            print("[WARN] 출력할 결과가 없습니다.")
            return

        print(f"\n{'='*60}")
        print(f"📊 Optuna 최적화 결과")
        print(f"{'='*60}")
        print(f"최고 {metric}: {result.get(metric, 'N/A')}")
        print(f"완료 Trial: {result.get('total_complete', 'N/A')}")
        print(f"중단 Trial: {result.get('total_pruned', 'N/A')}")
        print(f"\n최적 파라미터:")
        for k, v in result.get('params', {}).items():
            print(f"  {k}: {v:.4f}" if isinstance(v, float) else f"  {k}: {v}")
        print()
