"""
DeFi Arbitrage Opportunity Engine.

An asynchronous service that scans token price pairs for arbitrage
opportunities, risk-gates them, optionally holds them for manual approval,
and executes them either in simulation or as on-chain transfers.
"""

__version__ = "1.0.0"
__author__ = "Tim"
