"""Earnings and rate lookups computed on top of a DataLayer."""

from timesheetz.queries.earnings import EarningsCalculator, RateBook

__all__ = ["EarningsCalculator", "RateBook"]
