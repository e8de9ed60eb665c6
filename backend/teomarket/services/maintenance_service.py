# Overview: Scheduled maintenance jobs (converted cart cleanup) and the named job lock they run under.

from __future__ import annotations

import os
import socket
from contextlib import contextmanager
from datetime import timedelta

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Cart, CartItem, JobLock
from ..models.enums import CartStatus
from ..time_utils import utcnow
from ..validation import TeomarketError


class JobAlreadyRunning(TeomarketError):
    """Another run of the same scheduled job holds its lock."""
    status_code = 409


def _lock_owner() -> str:
    return f"{socket.gethostname()}:{os.getpid()}"


def acquire_job_lock(name: str, *, ttl_seconds: int) -> JobLock:
    """
    Take the named lock or raise JobAlreadyRunning.

    The unique name turns the INSERT into the acquisition step. A holder past
    its expires_at is presumed dead and the lock is taken over.
    """
    now = utcnow()
    owner = _lock_owner()
    lock = JobLock(name=name, owner=owner, acquired_at=now, expires_at=now + timedelta(seconds=ttl_seconds))
    db.session.add(lock)
    try:
        db.session.commit()
        return lock
    except IntegrityError:
        db.session.rollback()

    held = db.session.query(JobLock).filter_by(name=name).first()
    if held and held.expires_at > now:
        raise JobAlreadyRunning(
            f"Job {name} is already running",
            {"job": name, "owner": held.owner, "expires_at": held.expires_at.isoformat()},
        )

    previous_owner = held.owner if held else None
    # Expired: take over only if nobody else did in the meantime
    taken = (
        db.session.query(JobLock)
        .filter(JobLock.name == name, JobLock.expires_at <= now)
        .update(
            {"owner": owner, "acquired_at": now, "expires_at": now + timedelta(seconds=ttl_seconds)},
            synchronize_session=False,
        )
    )
    db.session.commit()
    if not taken:
        raise JobAlreadyRunning(f"Job {name} is already running", {"job": name})
    current_app.logger.warning("Job lock %s expired (previous owner %s), taken over", name, previous_owner)
    return db.session.query(JobLock).filter_by(name=name).one()


def release_job_lock(name: str) -> None:
    db.session.rollback()
    db.session.query(JobLock).filter_by(name=name, owner=_lock_owner()).delete(synchronize_session=False)
    db.session.commit()


@contextmanager
def job_lock(name: str, *, ttl_seconds: int | None = None):
    """Run the enclosed block as the only live run of job `name`."""
    if ttl_seconds is None:
        ttl_seconds = current_app.config.get("JOB_LOCK_TTL_SECONDS", 3600)
    lock = acquire_job_lock(name, ttl_seconds=ttl_seconds)
    try:
        yield lock
    finally:
        release_job_lock(name)


def cleanup_converted_carts(*, retention_days: int = 30) -> int:
    """
    Delete converted carts last updated more than retention_days ago.

    Items are deleted first, explicitly, rather than relying on cascades.
    Active carts are never touched. Returns the number of carts deleted.
    """
    cutoff = utcnow() - timedelta(days=retention_days)
    stale_ids = [
        cart_id for (cart_id,) in db.session.query(Cart.id).filter(
            Cart.status == CartStatus.CONVERTED.value,
            Cart.updated_at < cutoff,
        )
    ]
    if not stale_ids:
        return 0

    db.session.query(CartItem).filter(CartItem.cart_id.in_(stale_ids)).delete(synchronize_session=False)
    deleted = db.session.query(Cart).filter(Cart.id.in_(stale_ids)).delete(synchronize_session=False)
    db.session.commit()

    current_app.logger.info("Deleted %s converted carts older than %s days", deleted, retention_days)
    return deleted
