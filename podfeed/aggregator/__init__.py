"""Change aggregation for podfeed.

Exposes:
    ChangeAggregator -- single-consumer per-topic debounce loop.
    AggregatorState  -- idle / running / draining / terminated.
"""

from podfeed.aggregator.aggregator import DEFAULT_CHECK_INTERVAL, AggregatorState, ChangeAggregator

__all__ = ["DEFAULT_CHECK_INTERVAL", "AggregatorState", "ChangeAggregator"]
