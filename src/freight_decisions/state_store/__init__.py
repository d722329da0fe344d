"""
State Store (SQLite-based).

Persistent storage for the decision engine:
- Decision rules (confidence rules, expected fields, bands, templates, flow rules)
- Sender trust scores and the detection pattern registry
- Append-only confidence audit trail
- Shipment stages and open actions
"""

from .sqlite_store import (
    DetectionPatternRecord,
    SenderTrustRecord,
    StateStore,
)

__all__ = [
    "StateStore",
    "SenderTrustRecord",
    "DetectionPatternRecord",
]
