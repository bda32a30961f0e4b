"""Marketplace bounded context: orders, inventory reservation and escrow.

Handles the order lifecycle: atomic stock reservation at creation, the
fulfilment state machine guarded by fraud-prevention preconditions, and
simulated escrow custody of buyer funds.
"""

import structlog
from protean.domain import Domain

# Handlers run exactly once per command. Stock reservation retries on its own
# budget, and a stale write to an order is reported to the caller as-is.
marketplace = Domain(
    name="marketplace",
    config={"server": {"version_retry": {"enabled": False}}},
)

logger = structlog.get_logger(__name__)
