"""Execution module for risk evaluation, trade parameters and execution."""

from defi_arbitrage.execution.executor import ExecutionSimulator, ExecutorConfig
from defi_arbitrage.execution.params import TradeParameterBuilder
from defi_arbitrage.execution.risk import RiskEvaluator, RiskThresholds, SlippageModel


__all__ = [
    "ExecutionSimulator",
    "ExecutorConfig",
    "RiskEvaluator",
    "RiskThresholds",
    "SlippageModel",
    "TradeParameterBuilder",
]
