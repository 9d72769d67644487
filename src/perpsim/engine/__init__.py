"""Trigger evaluation engine and trailing-stop anchors."""

from perpsim.engine.anchors import TrailingAnchorBook
from perpsim.engine.trigger import (
    TickReport,
    TriggerAction,
    TriggerDecision,
    TriggerEngine,
    evaluate_position,
    should_fill,
)

__all__ = [
    "TickReport",
    "TrailingAnchorBook",
    "TriggerAction",
    "TriggerDecision",
    "TriggerEngine",
    "evaluate_position",
    "should_fill",
]
