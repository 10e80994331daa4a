"""stratlab.backtest

Backtest engine.

- validation: request rules, all violations reported together
- strategies: one incremental signal generator per strategy kind
- simulator: bar-by-bar execution against a cash/position ledger
- metrics + report: performance numbers and the caller-facing result

`run_backtest` in `stratlab.backtest.engine` ties them together.
"""
