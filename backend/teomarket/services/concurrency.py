# Overview: Row locking, retry and relative stock updates shared by the order and return services.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..models import Product
from ..validation import TransientInfraError


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks, dropped connections) and
    StaleDataError (optimistic locking conflicts). Once attempts run out an
    OperationalError surfaces as TransientInfraError; a StaleDataError is
    re-raised as is.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt < attempts - 1:
                time.sleep(backoff_base * (2 ** attempt))
                continue
            if isinstance(exc, OperationalError):
                current_app.logger.error("Database unavailable after %s attempts: %s", attempts, exc)
                raise TransientInfraError("Database temporarily unavailable") from exc
            raise


def decrement_stock(product_id: int, quantity: int) -> bool:
    """
    Conditionally take `quantity` units off a product's stock.

    Single UPDATE ... WHERE stock_quantity >= quantity, so two concurrent
    checkouts of the last unit cannot both succeed. Returns False when the
    guard did not match (not enough stock).
    """
    result = db.session.execute(
        update(Product)
        .where(Product.id == product_id, Product.stock_quantity >= quantity)
        .values(stock_quantity=Product.stock_quantity - quantity)
        .execution_options(synchronize_session="fetch")
    )
    return bool(result.rowcount)


def increment_stock(product_id: int, quantity: int) -> bool:
    """Relative stock increment. Returns False when the product row is gone."""
    result = db.session.execute(
        update(Product)
        .where(Product.id == product_id)
        .values(stock_quantity=Product.stock_quantity + quantity)
        .execution_options(synchronize_session="fetch")
    )
    return bool(result.rowcount)


def run_in_transaction(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    run_with_retry that also rolls back on business errors.

    Callers never observe flushed-but-uncommitted rows from a failed operation.
    """
    try:
        return run_with_retry(func, attempts=attempts, backoff_base=backoff_base)
    except Exception:
        db.session.rollback()
        raise
