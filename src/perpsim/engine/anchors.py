"""Trailing-stop anchors: the running favorable price extreme per position.

Kept outside the durable store; an anchor is process state that is seeded
from the entry price and discarded whenever the trailing parameters or the
position itself change.
"""

from decimal import Decimal

from perpsim.models import Position, PositionSide


class TrailingAnchorBook:
    """Favorable extreme per position id (max for LONG, min for SHORT)."""

    def __init__(self) -> None:
        self._anchors: dict[str, Decimal] = {}

    def get(self, position_id: str) -> Decimal | None:
        return self._anchors.get(position_id)

    def update(self, position: Position, price: Decimal) -> Decimal:
        """Advance the anchor with ``price`` and return it.

        A missing anchor is seeded from the entry price first, so the very
        first tick cannot trail from a worse level than entry.
        """
        current = self._anchors.get(position.id, position.entry_price)
        if position.side is PositionSide.LONG:
            anchor = max(current, price)
        else:
            anchor = min(current, price)
        self._anchors[position.id] = anchor
        return anchor

    def reset(self, position_id: str) -> None:
        """Forget the anchor; the next update reseeds from entry."""
        self._anchors.pop(position_id, None)

    def retain(self, position_ids: set[str]) -> None:
        """Drop anchors for positions that no longer exist."""
        for stale in set(self._anchors) - position_ids:
            del self._anchors[stale]

    def __contains__(self, position_id: object) -> bool:
        return position_id in self._anchors

    def __len__(self) -> int:
        return len(self._anchors)
