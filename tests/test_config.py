"""
Unit tests for src/config.py
"""

import copy

import pytest
from src.config import DEFAULT_CONFIG, _validate_config, load_config


class TestDefaultConfig:
    """Test DEFAULT_CONFIG validity"""

    def test_default_config_is_valid(self):
        _validate_config(DEFAULT_CONFIG)

    def test_reference_defaults(self):
        assert DEFAULT_CONFIG['backtest']['initial_capital'] == 100_000
        assert DEFAULT_CONFIG['costs']['commission_rate'] == 0.02
        assert DEFAULT_CONFIG['costs']['slippage_rate'] == 0.005
        assert DEFAULT_CONFIG['execution']['buy_fraction'] == 0.10
        assert DEFAULT_CONFIG['execution']['sell_fraction'] == 0.50

    def test_load_config_does_not_mutate_defaults(self):
        config = load_config(env_file=None, cli_overrides={'capital': 5_000.0})
        assert config['backtest']['initial_capital'] == 5_000.0
        assert DEFAULT_CONFIG['backtest']['initial_capital'] == 100_000


class TestValidateConfig:
    def test_non_positive_capital(self):
        config = copy.deepcopy(DEFAULT_CONFIG)
        config['backtest']['initial_capital'] = 0
        with pytest.raises(ValueError):
            _validate_config(config)

    def test_unknown_frequency(self):
        config = copy.deepcopy(DEFAULT_CONFIG)
        config['backtest']['rebalance_frequency'] = 'hourly'
        with pytest.raises(ValueError):
            _validate_config(config)

    def test_cost_rate_out_of_range(self):
        config = copy.deepcopy(DEFAULT_CONFIG)
        config['costs']['commission_rate'] = 1.5
        with pytest.raises(ValueError):
            _validate_config(config)

    def test_sell_fraction_zero(self):
        config = copy.deepcopy(DEFAULT_CONFIG)
        config['execution']['sell_fraction'] = 0
        with pytest.raises(ValueError):
            _validate_config(config)

    def test_negative_fixed_notional(self):
        config = copy.deepcopy(DEFAULT_CONFIG)
        config['execution']['fixed_buy_notional'] = -1
        with pytest.raises(ValueError):
            _validate_config(config)

    def test_lookback_zero(self):
        config = copy.deepcopy(DEFAULT_CONFIG)
        config['strategies']['momentum']['lookback'] = 0
        with pytest.raises(ValueError):
            _validate_config(config)

    def test_negative_threshold(self):
        config = copy.deepcopy(DEFAULT_CONFIG)
        config['strategies']['mean_reversion']['threshold'] = -1.0
        with pytest.raises(ValueError):
            _validate_config(config)

    def test_var_level_out_of_range(self):
        config = copy.deepcopy(DEFAULT_CONFIG)
        config['risk']['var_levels'] = [95]
        with pytest.raises(ValueError):
            _validate_config(config)

    def test_workers_zero(self):
        config = copy.deepcopy(DEFAULT_CONFIG)
        config['optimization']['workers'] = 0
        with pytest.raises(ValueError):
            _validate_config(config)

    def test_bad_log_level(self):
        config = copy.deepcopy(DEFAULT_CONFIG)
        config['logging']['level'] = 'VERBOSE'
        with pytest.raises(ValueError):
            _validate_config(config)


class TestOverrides:
    """CLI > .env > 기본값"""

    def test_cli_overrides(self):
        config = load_config(env_file=None, cli_overrides={
            'capital': 250_000.0,
            'rebalance': 'weekly',
            'commission': 0.001,
            'benchmark': 'SPY',
            'workers': 4,
            'no_costs': True,
            'strategy': 'momentum',  # 매핑 없는 인자는 무시
        })
        assert config['backtest']['initial_capital'] == 250_000.0
        assert config['backtest']['rebalance_frequency'] == 'weekly'
        assert config['costs']['commission_rate'] == 0.001
        assert config['costs']['include_transaction_costs'] is False
        assert config['backtest']['benchmark_asset_id'] == 'SPY'
        assert config['optimization']['workers'] == 4

    def test_none_values_ignored(self):
        config = load_config(env_file=None, cli_overrides={'capital': None, 'rebalance': None})
        assert config['backtest']['initial_capital'] == 100_000
        assert config['backtest']['rebalance_frequency'] == 'monthly'

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv('BACKTEST_INITIAL_CAPITAL', '50000')
        monkeypatch.setenv('BACKTEST_SLIPPAGE_RATE', '0.001')
        monkeypatch.setenv('BACKTEST_LOG_LEVEL', 'debug')
        config = load_config(env_file=None)
        assert config['backtest']['initial_capital'] == 50_000.0
        assert config['costs']['slippage_rate'] == 0.001
        assert config['logging']['level'] == 'DEBUG'

    def test_cli_beats_env(self, monkeypatch):
        monkeypatch.setenv('BACKTEST_INITIAL_CAPITAL', '50000')
        config = load_config(env_file=None, cli_overrides={'capital': 75_000.0})
        assert config['backtest']['initial_capital'] == 75_000.0

    def test_env_file(self, tmp_path, monkeypatch):
        # load_dotenv 가 os.environ 에 남긴 값도 테스트 종료 시 원복되도록 먼저 기록
        monkeypatch.setenv('BACKTEST_BENCHMARK', 'placeholder')
        monkeypatch.delenv('BACKTEST_BENCHMARK')
        env_file = tmp_path / '.env'
        env_file.write_text('BACKTEST_BENCHMARK=QQQ\n')
        config = load_config(env_file=str(env_file))
        assert config['backtest']['benchmark_asset_id'] == 'QQQ'

    def test_invalid_override_raises(self):
        with pytest.raises(ValueError):
            load_config(env_file=None, cli_overrides={'capital': -10.0})
