"""
OptunaOptimizer 모듈 테스트

테스트 항목:
1. 전략 타입별 DEFAULT_PARAM_SPACE
2. optimize() 반환 구조 / 파라미터 범위
3. optimize() 모든 Trial 중단 시 None 반환
4. 진행률 콜백
5. SQLite study 누적 / reset
"""

from unittest.mock import patch

import optuna
import pandas as pd
import pytest
from src.backtesting.engine import BacktestConfig, BacktestEngine
from src.backtesting.execution import CostModel
from src.backtesting.optimizer import OptunaOptimizer

PARAM_SPACE = {
    'lookback': {'type': 'int', 'low': 3, 'high': 10},
    'threshold': {'type': 'float', 'low': 0.01, 'high': 0.04},
}


def _price_data(days=80):
    dates = pd.date_range('2024-01-01', periods=days, freq='D')
    # 상승 추세 + 주기적 조정
    prices = [100 * 1.005 ** i * (0.97 if i % 7 == 0 else 1.0) for i in range(days)]
    return {'AAPL': pd.DataFrame({'date': dates, 'price': prices})}


def _optimizer(strategy_type='momentum', **kwargs):
    config = BacktestConfig({'type': strategy_type, 'universe': ['AAPL'],
                             'rebalance_frequency': 'weekly'},
                            cost_model=CostModel.zero())
    return OptunaOptimizer(config, _price_data(), **kwargs)


class TestParamSpace:
    def test_default_spaces(self):
        assert set(_optimizer('momentum').default_param_space()) == {'lookback', 'threshold'}
        assert set(_optimizer('mean_reversion').default_param_space()) == {'lookback', 'threshold'}
        assert set(_optimizer('smart_beta').default_param_space()) == {'threshold'}

    def test_buy_and_hold_has_no_space(self):
        with pytest.raises(ValueError):
            _optimizer('buy_and_hold').default_param_space()


class TestOptimize:
    """optimize() 테스트"""

    def test_result_structure(self):
        result = _optimizer().optimize(param_space=PARAM_SPACE, n_trials=4,
                                       metric='total_return', verbose=False, seed=42)

        assert result is not None
        assert set(result) == {'params', 'total_return', 'total_complete', 'total_pruned',
                               'existing_before'}
        assert 3 <= result['params']['lookback'] <= 10
        assert 0.01 <= result['params']['threshold'] <= 0.04
        assert result['total_complete'] + result['total_pruned'] == 4
        assert result['existing_before'] == 0

    def test_best_value_matches_rerun(self):
        optimizer = _optimizer()
        result = optimizer.optimize(param_space=PARAM_SPACE, n_trials=3,
                                    metric='total_return', verbose=False, seed=1)

        best = BacktestConfig({'type': 'momentum', 'universe': ['AAPL'],
                               'parameters': result['params'], 'rebalance_frequency': 'weekly'},
                              cost_model=CostModel.zero())
        rerun = BacktestEngine(best, _price_data()).run()
        assert rerun.performance.total_return == pytest.approx(result['total_return'])

    def test_all_pruned_returns_none(self):
        optimizer = _optimizer()
        with patch.object(OptunaOptimizer, '_evaluate', side_effect=optuna.TrialPruned()):
            result = optimizer.optimize(param_space=PARAM_SPACE, n_trials=3, verbose=False)
        assert result is None

    def test_progress_callback(self):
        calls = []
        _optimizer().optimize(param_space=PARAM_SPACE, n_trials=3, verbose=False, seed=0,
                              progress_callback=lambda cur, total: calls.append((cur, total)))
        assert calls[0] == (0, 3)
        assert calls[-1] == (3, 3)

    def test_persistent_study(self, tmp_path):
        storage = f"sqlite:///{tmp_path / 'studies.db'}"

        first = _optimizer(study_storage=storage).optimize(
            param_space=PARAM_SPACE, n_trials=2, metric='total_return', verbose=False, seed=0)
        second = _optimizer(study_storage=storage).optimize(
            param_space=PARAM_SPACE, n_trials=2, metric='total_return', verbose=False, seed=1)
        reset = _optimizer(study_storage=storage).optimize(
            param_space=PARAM_SPACE, n_trials=1, metric='total_return', verbose=False,
            seed=2, reset=True)

        assert first['existing_before'] == 0
        assert second['existing_before'] == first['total_complete']
        assert second['total_return'] >= first['total_return']  # 누적 전체 최고값
        assert reset['existing_before'] == 0

    def test_print_results(self, capsys):
        optimizer = _optimizer()
        optimizer.print_results({'params': {'lookback': 5, 'threshold': 0.02},
                                 'sharpe_ratio': 1.5, 'total_complete': 3, 'total_pruned': 0})
        out = capsys.readouterr().out
        assert 'lookback: 5' in out
        assert 'threshold: 0.0200' in out

        optimizer.print_results(None)
        assert '[WARN]' in capsys.readouterr().out
