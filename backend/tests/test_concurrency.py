# Overview: Threaded lost-update tests against a file-backed SQLite database.

import os
import tempfile
import threading
import unittest
from unittest import mock

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from openstock import create_app
from openstock.extensions import db
from openstock.models import Product
from openstock.services import catalog_service, stock_service
from openstock.services.concurrency import ConcurrentModificationError, is_lock_conflict, run_with_retry
from openstock.validation import InsufficientStockError


class ConcurrencyTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        db_path = os.path.join(self.tmpdir.name, "concurrency.db")
        self.app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
            "STOCK_RETRY_ATTEMPTS": 10,
            "STOCK_RETRY_BACKOFF": 0.01,
        })

        with self.app.app_context():
            db.drop_all()
            db.create_all()

    def tearDown(self):
        with self.app.app_context():
            db.session.remove()
            db.drop_all()
            db.session.remove()
            db.engine.dispose()
        self.tmpdir.cleanup()

    def _seed_product(self, quantity):
        with self.app.app_context():
            product = catalog_service.create_product(
                {"name": "Concurrent Product", "cost_price": 4.0, "initial_stock": quantity}
            )
            return product.id

    def _run_outs(self, product_id, workers):
        results = []
        lock = threading.Lock()
        barrier = threading.Barrier(workers)

        def worker():
            with self.app.app_context():
                try:
                    barrier.wait()
                    stock_service.apply_movement(product_id=product_id, movement_type="out", quantity=1)
                    with lock:
                        results.append("applied")
                except Exception as exc:
                    with lock:
                        results.append(exc)
                finally:
                    db.session.remove()

        threads = [threading.Thread(target=worker) for _ in range(workers)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        return results

    def test_double_spend_of_last_unit(self):
        product_id = self._seed_product(1)

        results = self._run_outs(product_id, 2)

        applied = [r for r in results if r == "applied"]
        rejected = [r for r in results if r != "applied"]
        self.assertEqual(len(applied), 1)
        self.assertEqual(len(rejected), 1)
        self.assertIsInstance(rejected[0], (InsufficientStockError, ConcurrentModificationError))

        with self.app.app_context():
            self.assertEqual(db.session.get(Product, product_id).stock_quantity, 0)
            self.assertTrue(stock_service.verify_target(product_id).is_consistent)

    def test_parallel_outs_never_oversell(self):
        product_id = self._seed_product(5)

        results = self._run_outs(product_id, 8)

        applied = sum(1 for r in results if r == "applied")
        for r in results:
            if r != "applied":
                self.assertIsInstance(r, (InsufficientStockError, ConcurrentModificationError))
        self.assertLessEqual(applied, 5)
        self.assertGreaterEqual(applied, 1)

        with self.app.app_context():
            stored = db.session.get(Product, product_id).stock_quantity
            check = stock_service.verify_target(product_id)
            self.assertEqual(stored, 5 - applied)
            self.assertTrue(check.is_consistent)
            self.assertEqual(check.movement_count, 1 + applied)

    def test_delete_losing_race_to_a_movement_archives(self):
        product_id = self._seed_product(0)
        real_has_movements = catalog_service.has_movements
        checks = []

        def receive_elsewhere():
            with self.app.app_context():
                try:
                    stock_service.apply_movement(product_id=product_id, movement_type="in", quantity=3)
                finally:
                    db.session.remove()

        def has_movements_then_receive(pid, variant_id=None):
            seen = real_has_movements(pid, variant_id)
            if not checks:
                # Another session books stock right after the first history check.
                thread = threading.Thread(target=receive_elsewhere)
                thread.start()
                thread.join()
            checks.append(seen)
            return seen

        with mock.patch.object(catalog_service, "has_movements", side_effect=has_movements_then_receive):
            with self.app.app_context():
                try:
                    outcome = catalog_service.delete_product(product_id)
                finally:
                    db.session.remove()

        self.assertEqual(outcome, "archived")
        self.assertEqual(checks, [False, True])
        with self.app.app_context():
            product = db.session.get(Product, product_id)
            self.assertIsNotNone(product)
            self.assertFalse(product.is_active)
            self.assertEqual(product.stock_quantity, 3)
            self.assertEqual(stock_service.verify_target(product_id).movement_count, 1)


# run_with_retry unit behavior (in-memory app fixture)


def test_retry_succeeds_after_stale_write(app, db_session):
    calls = []

    def _op():
        calls.append(1)
        if len(calls) < 3:
            raise StaleDataError("stale")
        return "ok"

    assert run_with_retry(_op, attempts=3, backoff_base=0) == "ok"
    assert len(calls) == 3


def test_retry_gives_up_with_concurrent_modification(app, db_session):
    def _op():
        raise StaleDataError("stale")

    with pytest.raises(ConcurrentModificationError):
        run_with_retry(_op, attempts=2, backoff_base=0)


def test_non_lock_operational_error_is_not_retried(app, db_session):
    calls = []

    def _op():
        calls.append(1)
        raise OperationalError("SELECT 1", {}, Exception("no such table: nope"))

    with pytest.raises(OperationalError):
        run_with_retry(_op, attempts=3, backoff_base=0)
    assert len(calls) == 1


def test_is_lock_conflict():
    assert is_lock_conflict(OperationalError("UPDATE", {}, Exception("database is locked")))
    assert not is_lock_conflict(OperationalError("UPDATE", {}, Exception("disk I/O error")))
