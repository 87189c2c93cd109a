"""
Unit tests for portfolio-backtester

Test modules:
- test_utils.py: Input validation / Decimal conversion tests
- test_config.py: Configuration loading and validation tests
- backtesting/: Engine, portfolio, signals, execution, metrics, drawdown, optimizer tests
- data_loader/: Price series validation and provider tests

Run tests:
    pytest tests/
    pytest tests/test_utils.py -v
    pytest tests/ --cov=src
"""
