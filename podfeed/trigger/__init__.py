"""Refresh action execution for podfeed.

Exports:
    ActionTrigger       -- Abstract refresh action.
    ScriptActionTrigger -- Runs the refresh script with the topic argument.
    TriggerPool         -- Bounded worker pool the aggregator dispatches to.
    build_trigger_pool  -- Factory used by the application bootstrap.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from podfeed.trigger.pool import ResultCallback, TriggerPool
from podfeed.trigger.script import ActionTrigger, ScriptActionTrigger

if TYPE_CHECKING:
    from podfeed.models.config import TriggerConfig

__all__ = [
    "ActionTrigger",
    "ScriptActionTrigger",
    "TriggerPool",
    "build_trigger_pool",
]


def build_trigger_pool(config: TriggerConfig, on_result: ResultCallback | None = None) -> TriggerPool:
    """Build a TriggerPool running the configured refresh script."""
    trigger = ScriptActionTrigger(
        command=config.command,
        timeout=config.timeout_seconds,
        cwd=config.cwd or None,
    )
    return TriggerPool(trigger=trigger, workers=config.workers, on_result=on_result)
