"""Custom exceptions for the paper-trading simulator.

Ledger, store and trigger-engine errors all live here to avoid circular
imports between modules.
"""


class SimulatorError(Exception):
    """Base exception for all simulator errors."""


class ValidationError(SimulatorError):
    """Raised when an order or risk update is rejected before any store call."""


class InsufficientBalanceError(SimulatorError):
    """Raised when margin plus opening fee exceeds the available balance."""


class MarketUnavailableError(SimulatorError):
    """Raised when no finite, positive price is available for a symbol."""


class StoreError(SimulatorError):
    """Raised when the durable store fails or returns inconsistent data."""


class PositionNotFoundError(StoreError):
    """Raised when a position id is unknown to the store."""
