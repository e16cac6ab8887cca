# Overview: Threaded concurrency tests for ledger postings and the completion edge.

"""
Scripted concurrency tests against a file-backed SQLite database, one app
context (and session) per thread.
"""
import os
import tempfile
import threading
import unittest

from pawnops import create_app
from pawnops.extensions import db
from pawnops.models import Account, Branch, CapitalLedgerEntry
from pawnops.models.ledger import TRANSACTION_TRANSFER_IN, TRANSACTION_TRANSFER_OUT
from pawnops.roles import ROLE_ADMIN, ROLE_LOGISTICS, Principal
from pawnops.services import assignment_service, ledger_service
from pawnops.validation import ConflictError


class LedgerConcurrencyTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        db_path = os.path.join(self.tmpdir.name, "concurrency.db")
        self.app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
            "BCRYPT_ROUNDS": 4,
        })

        with self.app.app_context():
            db.drop_all()
            db.create_all()

            source = Branch(name="Source", code="SRC", latitude=10.0, longitude=123.0)
            destination = Branch(name="Destination", code="DST", latitude=10.1, longitude=123.1)
            db.session.add_all([source, destination])
            db.session.commit()
            self.source_id = source.id
            self.destination_id = destination.id

            admin = Account(username="admin", role=ROLE_ADMIN, password_hash="dummy", is_active=True)
            driver = Account(username="driver", role=ROLE_LOGISTICS, password_hash="dummy", is_active=True)
            db.session.add_all([admin, driver])
            db.session.commit()
            self.admin = Principal(id=admin.id, role=ROLE_ADMIN)
            self.driver = Principal(id=driver.id, role=ROLE_LOGISTICS)

    def tearDown(self):
        with self.app.app_context():
            db.session.remove()
            db.drop_all()
            db.session.remove()
            db.engine.dispose()
        self.tmpdir.cleanup()

    def _run_threads(self, targets):
        results = []
        lock = threading.Lock()

        def worker(func):
            with self.app.app_context():
                try:
                    outcome = func()
                    with lock:
                        results.append(outcome)
                except Exception as exc:
                    with lock:
                        results.append(exc)
                finally:
                    db.session.remove()

        threads = [threading.Thread(target=worker, args=(func,)) for func in targets]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        return results

    def test_concurrent_postings_keep_running_balance(self):
        branch_id = self.source_id
        results = self._run_threads([
            lambda: ledger_service.post_entry(branch_id, TRANSACTION_TRANSFER_IN, "100").id,
            lambda: ledger_service.post_entry(branch_id, TRANSACTION_TRANSFER_OUT, "-30").id,
        ])

        self.assertFalse([r for r in results if isinstance(r, Exception)])
        with self.app.app_context():
            self.assertEqual(ledger_service.get_current_capital_cents(branch_id), 7000)
            self.assertEqual(ledger_service.verify_branch_ledger(branch_id), [])

    def test_many_writers_one_branch(self):
        branch_id = self.source_id
        results = self._run_threads([
            lambda: ledger_service.post_entry(branch_id, TRANSACTION_TRANSFER_IN, "1").id
            for _ in range(10)
        ])

        self.assertFalse([r for r in results if isinstance(r, Exception)])
        with self.app.app_context():
            balances = [
                e.running_balance_cents
                for e in ledger_service.list_entries(branch_id, order_descending=False)
            ]
        self.assertEqual(balances, [100 * n for n in range(1, 11)])

    def test_concurrent_dropoffs_settle_once(self):
        with self.app.app_context():
            assignment = assignment_service.create_assignment(self.admin, {
                "assigned_to": self.driver.id,
                "assignment_type": "CAPITAL_DELIVERY",
                "from_location_type": "BRANCH",
                "from_branch_id": self.source_id,
                "to_location_type": "BRANCH",
                "to_branch_id": self.destination_id,
                "amount": "5000",
            })
            assignment_id = assignment.id
            assignment_service.verify_pickup(self.driver, assignment_id, "pickup.jpg")

        results = self._run_threads([
            lambda: assignment_service.verify_dropoff(self.driver, assignment_id, "a.jpg").assignment_id,
            lambda: assignment_service.verify_dropoff(self.driver, assignment_id, "b.jpg").assignment_id,
        ])

        completed = [r for r in results if r == assignment_id]
        conflicts = [r for r in results if isinstance(r, ConflictError)]
        self.assertEqual(len(completed), 1)
        self.assertEqual(len(conflicts), 1)

        with self.app.app_context():
            inbound = (
                db.session.query(CapitalLedgerEntry)
                .filter_by(assignment_id=assignment_id, transaction_type=TRANSACTION_TRANSFER_IN)
                .count()
            )
            self.assertEqual(inbound, 1)
            self.assertEqual(ledger_service.get_current_capital_cents(self.destination_id), 500000)
            self.assertEqual(ledger_service.get_current_capital_cents(self.source_id), -500000)


if __name__ == "__main__":
    unittest.main()
