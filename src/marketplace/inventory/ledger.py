"""Inventory ledger: atomic, all-or-nothing stock reservation across products.

A reservation loads every referenced product inside one unit of work, checks
stock and availability for all of them, and saves the decrements together.
Each product is saved against the version that was read, so when another
reservation commits against any of the same products first, the whole unit
of work is rolled back and re-run against the new stock. A racer therefore
either sees the decremented stock and fails with ``InsufficientStock``, or
gives up with ``Contention`` once the attempt budget is spent. Stock can never
go below zero.
"""

from collections.abc import Iterable
from dataclasses import dataclass

import structlog
from protean import UnitOfWork
from protean.exceptions import ExpectedVersionError, ObjectNotFoundError
from protean.utils.globals import current_domain

from marketplace.config import get_settings
from marketplace.errors import Contention, InsufficientStock, NotFound
from marketplace.inventory.product import Product

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class StockRequest:
    product_id: str
    quantity: int


def fetch_product(product_id: str) -> Product:
    try:
        return current_domain.repository_for(Product).get(product_id)
    except ObjectNotFoundError as exc:
        raise NotFound(f"Product {product_id} not found") from exc


def stock_of(product_id: str) -> int:
    return fetch_product(product_id).stock


def take_stock(items: Iterable[StockRequest]) -> list[Product]:
    """Decrement stock for every request within the current unit of work.

    Quantities for a repeated product are added up first, so they draw on the
    same stock. Every product is checked before any is saved; the first
    request that cannot be met is reported.
    """
    wanted: dict[str, int] = {}
    for item in items:
        wanted[item.product_id] = wanted.get(item.product_id, 0) + item.quantity

    products = {product_id: fetch_product(product_id) for product_id in wanted}
    for product_id, quantity in wanted.items():
        if not products[product_id].can_supply(quantity):
            raise InsufficientStock(product_id)

    repo = current_domain.repository_for(Product)
    for product_id, quantity in wanted.items():
        product = products[product_id]
        product.take(quantity)
        repo.add(product)
    return list(products.values())


def return_stock(items: Iterable[StockRequest]) -> None:
    """Give previously reserved units back within the current unit of work."""
    repo = current_domain.repository_for(Product)
    for item in items:
        product = fetch_product(item.product_id)
        product.put_back(item.quantity)
        repo.add(product)


def reserve(items: Iterable[StockRequest]) -> list[Product]:
    items = list(items)

    def _reserve():
        with UnitOfWork():
            return take_stock(items)

    return retry_on_conflict(_reserve, operation="reserve")


def release(items: Iterable[StockRequest]) -> None:
    items = list(items)

    def _release():
        with UnitOfWork():
            return_stock(items)

    retry_on_conflict(_release, operation="release")


def retry_on_conflict(work, operation: str, max_attempts: int | None = None):
    """Run ``work`` until it commits without a version conflict.

    ``work`` must open its own unit of work so that every attempt starts from
    freshly loaded products. Conflicts beyond the attempt budget become
    ``Contention``; every other failure propagates on the first attempt.
    """
    max_attempts = max_attempts or get_settings().reservation_max_attempts
    for attempt in range(1, max_attempts + 1):
        try:
            return work()
        except ExpectedVersionError:
            logger.debug("Stock write conflict", operation=operation, attempt=attempt)

    logger.warning("Stock contention", operation=operation, attempts=max_attempts)
    raise Contention(f"Stock {operation} abandoned after {max_attempts} attempts")
