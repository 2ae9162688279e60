"""
Concurrent ledger writes against a file-backed SQLite database.

In-memory SQLite shares a single connection, so these tests use a real file
to get one connection (and one write lock contender) per thread.
"""
import os
import tempfile
import threading
import unittest

from stockledger import create_app
from stockledger.errors import InsufficientStockError
from stockledger.extensions import db
from stockledger.models import Product, Sale, User
from stockledger.models.auth import ROLE_ADMIN, ROLE_SALES
from stockledger.services import products_service, purchase_service, sales_service


class ConcurrencyTests(unittest.TestCase):
    STOCK = 5

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        db_path = os.path.join(self.tmpdir.name, "concurrency.db")
        self.app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
            "SQLALCHEMY_ENGINE_OPTIONS": {"connect_args": {"check_same_thread": False}},
        })

        with self.app.app_context():
            db.drop_all()
            db.create_all()

            admin = User(username="admin", email="admin@example.com", role=ROLE_ADMIN, is_active=True)
            clerk = User(username="clerk", email="clerk@example.com", role=ROLE_SALES, is_active=True)
            db.session.add_all([admin, clerk])
            db.session.commit()
            self.admin_id = admin.id
            self.clerk_id = clerk.id

            product = products_service.create_product(
                patch={
                    "sku": "CONCUR-1",
                    "name": "Concurrent Product",
                    "category": "Test",
                    "cost_price_cents": 400,
                    "selling_price_cents": 1000,
                    "stock_quantity": self.STOCK,
                },
                actor_user_id=self.admin_id,
            )
            self.product_id = product.id

    def tearDown(self):
        with self.app.app_context():
            db.session.remove()
            db.drop_all()
            db.session.remove()
            db.engine.dispose()
        self.tmpdir.cleanup()

    def _run(self, workers):
        results = []
        lock = threading.Lock()

        def wrap(fn):
            def worker():
                with self.app.app_context():
                    try:
                        fn()
                        with lock:
                            results.append("ok")
                    except Exception as exc:
                        with lock:
                            results.append(exc)
                    finally:
                        db.session.remove()
            return worker

        threads = [threading.Thread(target=wrap(fn)) for fn in workers]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        return results

    def _sell_one(self):
        sales_service.create_sale(
            product_id=self.product_id,
            quantity=1,
            unit_price_cents=1000,
            payment_method="cash",
            actor_user_id=self.clerk_id,
        )

    def test_concurrent_sales_never_oversell(self):
        attempts = 8
        results = self._run([self._sell_one] * attempts)

        successes = [r for r in results if r == "ok"]
        insufficient = [r for r in results if isinstance(r, InsufficientStockError)]
        unexpected = [r for r in results if r != "ok" and not isinstance(r, InsufficientStockError)]

        self.assertFalse(unexpected)
        self.assertEqual(len(successes), min(attempts, self.STOCK))
        self.assertEqual(len(insufficient), max(0, attempts - self.STOCK))

        with self.app.app_context():
            product = db.session.get(Product, self.product_id)
            self.assertEqual(product.stock_quantity, self.STOCK - min(attempts, self.STOCK))
            self.assertEqual(db.session.query(Sale).count(), len(successes))
            self.assertEqual(products_service.verify_stock_invariant(), [])

    def test_interleaved_sales_and_purchases_balance(self):
        def restock():
            purchase_service.create_purchase(
                product_id=self.product_id,
                quantity=2,
                unit_cost_cents=400,
                supplier="Concurrent Supplier",
                actor_user_id=self.admin_id,
            )

        results = self._run([self._sell_one, restock] * 4)

        unexpected = [r for r in results if r != "ok" and not isinstance(r, InsufficientStockError)]
        self.assertFalse(unexpected)

        with self.app.app_context():
            product = db.session.get(Product, self.product_id)
            self.assertGreaterEqual(product.stock_quantity, 0)
            self.assertEqual(product.stock_quantity, products_service.replay_stock(self.product_id))
            self.assertEqual(products_service.verify_stock_invariant(), [])


if __name__ == "__main__":
    unittest.main()
