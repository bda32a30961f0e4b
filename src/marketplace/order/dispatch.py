"""Synchronous processing of order commands.

Order commands are processed in the caller's thread and return the handler's
result. Creation is re-run when a stock write loses a race, up to the
reservation budget. Every other order command runs exactly once: a stale
write to the order surfaces as ``Conflict`` for the caller to re-read.
"""

import structlog
from protean.exceptions import ExpectedVersionError
from protean.utils.globals import current_domain

from marketplace.errors import Conflict
from marketplace.inventory.ledger import retry_on_conflict

logger = structlog.get_logger(__name__)


def place(command):
    """Process an order-creation command, retrying stock write conflicts."""
    return retry_on_conflict(
        lambda: current_domain.process(command, asynchronous=False),
        operation="create_order",
    )


def submit(command):
    """Process a command that mutates an existing order."""
    try:
        return current_domain.process(command, asynchronous=False)
    except ExpectedVersionError as exc:
        logger.warning("Order changed concurrently", order_id=command.order_id, command=command.__class__.__name__)
        raise Conflict(f"Order {command.order_id} was modified concurrently; re-read and retry") from exc
