# Overview: Pytest coverage for converted-cart cleanup and the scheduled job lock.

from datetime import timedelta

import pytest
from teomarket.extensions import db
from teomarket.models import Cart, CartItem, JobLock
from teomarket.models.enums import CartStatus
from teomarket.services import maintenance_service
from teomarket.services.maintenance_service import JobAlreadyRunning
from teomarket.time_utils import utcnow


def _cart(status, age_days, product=None, session_id=None):
    cart = Cart(
        session_id=session_id or f"sess-{status}-{age_days}",
        status=status.value,
        updated_at=utcnow() - timedelta(days=age_days),
    )
    db.session.add(cart)
    db.session.flush()
    if product is not None:
        db.session.add(CartItem(cart_id=cart.id, product_id=product.id, quantity=1))
    db.session.commit()
    return cart.id


class TestCartCleanup:
    def test_only_old_converted_carts_are_deleted(self, db_session, make_product):
        product = make_product()
        old_converted = _cart(CartStatus.CONVERTED, 45, product)
        recent_converted = _cart(CartStatus.CONVERTED, 10, product)
        old_active = _cart(CartStatus.ACTIVE, 90, product)

        deleted = maintenance_service.cleanup_converted_carts(retention_days=30)

        assert deleted == 1
        assert db.session.get(Cart, old_converted) is None
        assert db.session.query(CartItem).filter_by(cart_id=old_converted).count() == 0
        assert db.session.get(Cart, recent_converted) is not None
        assert db.session.get(Cart, old_active) is not None

    def test_nothing_to_delete(self, db_session):
        _cart(CartStatus.ACTIVE, 400)
        assert maintenance_service.cleanup_converted_carts() == 0

    def test_retention_window_is_configurable(self, db_session):
        cart_id = _cart(CartStatus.CONVERTED, 10)
        assert maintenance_service.cleanup_converted_carts(retention_days=7) == 1
        assert db.session.get(Cart, cart_id) is None


class TestJobLock:
    def test_second_acquire_is_refused(self, db_session):
        maintenance_service.acquire_job_lock("carts:cleanup", ttl_seconds=60)

        with pytest.raises(JobAlreadyRunning):
            maintenance_service.acquire_job_lock("carts:cleanup", ttl_seconds=60)

    def test_release_allows_next_run(self, db_session):
        maintenance_service.acquire_job_lock("carts:cleanup", ttl_seconds=60)
        maintenance_service.release_job_lock("carts:cleanup")

        lock = maintenance_service.acquire_job_lock("carts:cleanup", ttl_seconds=60)
        assert lock.name == "carts:cleanup"

    def test_expired_lock_is_taken_over(self, db_session):
        past = utcnow() - timedelta(hours=2)
        db.session.add(JobLock(name="carts:cleanup", owner="dead-host:1", acquired_at=past,
                               expires_at=past + timedelta(minutes=5)))
        db.session.commit()

        lock = maintenance_service.acquire_job_lock("carts:cleanup", ttl_seconds=60)

        assert lock.owner != "dead-host:1"
        assert lock.expires_at > utcnow()

    def test_context_manager_releases_on_error(self, db_session):
        with pytest.raises(RuntimeError):
            with maintenance_service.job_lock("currencies:update-rates", ttl_seconds=60):
                raise RuntimeError("boom")

        assert db.session.query(JobLock).filter_by(name="currencies:update-rates").count() == 0

    def test_locks_are_per_job(self, db_session):
        maintenance_service.acquire_job_lock("carts:cleanup", ttl_seconds=60)
        maintenance_service.acquire_job_lock("currencies:update-rates", ttl_seconds=60)

        assert db.session.query(JobLock).count() == 2
