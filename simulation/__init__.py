"""Deterministic tick-driven simulation of the launch-token strategy.

Clock and event sources produce observations; the scoring engine and filter
pipeline decide admission; the portfolio manager and position lifecycle own
capital and exits; the runner ties them together and reports to a ledger.
"""
