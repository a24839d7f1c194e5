"""
Dispute status derivation.

A dispute's status is never stored; it is computed from `resolution`
wherever a dispute is surfaced. This module is the only place that rule
lives.
"""
from typing import Optional

from domain.enums import DisputeStatus

REJECTED_RESOLUTION = "REJECTED"
DEFAULT_RESOLUTION = "Resolved by admin"


def derive_dispute_status(resolution: Optional[str]) -> DisputeStatus:
    """None → OPEN, "REJECTED" → REJECTED, anything else → RESOLVED."""
    if resolution is None:
        return DisputeStatus.OPEN
    if resolution == REJECTED_RESOLUTION:
        return DisputeStatus.REJECTED
    return DisputeStatus.RESOLVED
