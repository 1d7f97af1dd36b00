"""Extraction orchestrator against a stub classifier and a SQLite ledger."""

import asyncio
import unittest
from datetime import date
from decimal import Decimal
from unittest.mock import patch

from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from bizledger.models.ledger import Asset, AuditLog, Base, Business, Expense, Income
from bizledger.schemas.finance import TransactionKind
from bizledger.services.ai.transaction_extract.contracts import FALLBACK_QUESTION, ClassifierOutput
from bizledger.services.extraction_orchestrator import (
    ADVISORY_NOTE,
    ExtractionInputError,
    ExtractionOrchestrator,
)
from bizledger.services.ledger_store import LedgerInsertError, LedgerUnavailableError, SqlLedgerStore

TODAY = date(2026, 3, 15)


class StubClassifier:
    def __init__(self, payload=None, *, output=None):
        self.output = output if output is not None else ClassifierOutput.from_parsed(payload or {}, "stub:v1")
        self.calls = []

    async def classify(self, utterance, *, business_id, today, history=None):
        self.calls.append({"utterance": utterance, "business_id": business_id, "today": today, "history": history})
        return self.output


class FlakyStore:
    """Delegates to a real store but fails the Nth insert calls (0-based)."""

    def __init__(self, inner, failures):
        self.inner = inner
        self.failures = failures
        self.calls = 0

    def insert(self, kind, values, *, business_id):
        index = self.calls
        self.calls += 1
        if index in self.failures:
            raise self.failures[index]
        return self.inner.insert(kind, values, business_id=business_id)


def expense(amount=50, **extra):
    item = {"type": "expense", "amount": amount, "category": "Office Supplies", "description": "Office supplies"}
    item.update(extra)
    return item


class OrchestratorTestBase(unittest.TestCase):
    def setUp(self):
        self.engine = create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        Base.metadata.create_all(self.engine)
        self.SessionLocal = sessionmaker(bind=self.engine)
        self.db = self.SessionLocal()

        business = Business(user_id="user-1", name="Acme Studio", fiscal_start_date=date(2026, 1, 1))
        self.db.add(business)
        self.db.commit()
        self.business_id = business.id
        self.store = SqlLedgerStore(self.db, actor_id="user-1")

    def tearDown(self):
        self.db.close()
        Base.metadata.drop_all(self.engine)
        self.engine.dispose()

    def run_extract(self, classifier, utterance="I spent $50 on office supplies today", store=None, **kwargs):
        orchestrator = ExtractionOrchestrator(classifier, store or self.store, clock=lambda: TODAY, **kwargs)
        return asyncio.run(orchestrator.extract(utterance, self.business_id))


class ScenarioTests(OrchestratorTestBase):
    def test_office_supplies_expense(self):
        classifier = StubClassifier({"transactions": [expense()], "confidence": 0.95})

        outcome = self.run_extract(classifier)

        self.assertEqual(outcome.persisted_count, 1)
        row = self.db.query(Expense).one()
        self.assertEqual(row.amount, Decimal("50.00"))
        self.assertEqual(row.category, "Office Supplies")
        self.assertEqual(row.vendor, "Unknown")
        self.assertEqual(row.recurrence, "once")
        self.assertEqual(row.tax_deductible, "yes")
        self.assertEqual(row.payment_method, "unspecified")
        self.assertEqual(row.date, TODAY)
        self.assertEqual(row.business_id, self.business_id)
        self.assertIsNone(outcome.advisory_note)
        self.assertEqual(outcome.summary_lines, ["Expense: $50.00 - Office supplies (Office Supplies)"])

    def test_income_and_asset_in_one_message(self):
        classifier = StubClassifier(
            {
                "transactions": [
                    {"type": "income", "amount": 1000, "category": "Services", "description": "Web design work"},
                    {"type": "asset", "amount": 200, "category": "Equipment", "description": "Monitor"},
                ],
                "confidence": 0.9,
            }
        )

        outcome = self.run_extract(
            classifier,
            "Client paid me $1000 for web design work and I bought a $200 monitor",
        )

        self.assertEqual(outcome.persisted_count, 2)
        income = self.db.query(Income).one()
        self.assertEqual(income.amount, Decimal("1000.00"))
        self.assertEqual(income.client, "Unknown")
        self.assertEqual(income.tax_withheld, Decimal("0.00"))
        asset = self.db.query(Asset).one()
        self.assertEqual(asset.name, "Monitor")
        self.assertEqual(asset.current_value, Decimal("200.00"))
        self.assertEqual(asset.purchase_value, Decimal("200.00"))
        self.assertEqual(asset.purchase_date, TODAY)
        self.assertEqual(asset.documents, [])
        self.assertEqual([type(r) for r in outcome.persisted_records], [Income, Asset])

    def test_no_transaction_in_message(self):
        classifier = StubClassifier(
            {
                "transactions": [],
                "followUpQuestions": ["What transaction would you like to record?"],
                "confidence": 0.2,
            }
        )

        outcome = self.run_extract(classifier, "thanks for the update")

        self.assertEqual(outcome.persisted_count, 0)
        self.assertTrue(outcome.needs_more_detail)
        self.assertEqual(outcome.follow_up_questions, ["What transaction would you like to record?"])
        self.assertEqual(self.db.query(Expense).count(), 0)


class PolicyTests(OrchestratorTestBase):
    def test_partial_failure_keeps_order_of_good_candidates(self):
        classifier = StubClassifier(
            {
                "transactions": [
                    expense(10, description="first"),
                    {"type": "transfer", "amount": 5, "category": "x", "description": "bad kind"},
                    expense("lots", description="bad amount"),
                    expense(30, description="second"),
                    expense(-4, description="negative"),
                    expense(40, description="third"),
                ],
                "confidence": 0.9,
            }
        )

        outcome = self.run_extract(classifier)

        self.assertEqual(outcome.persisted_count, 3)
        self.assertEqual([r.description for r in outcome.persisted_records], ["first", "second", "third"])
        self.assertEqual(
            [(i.position, i.status, i.reason) for i in outcome.items],
            [
                (0, "persisted", None),
                (1, "rejected", "unknown_kind"),
                (2, "rejected", "bad_amount"),
                (3, "persisted", None),
                (4, "rejected", "negative_amount"),
                (5, "persisted", None),
            ],
        )
        self.assertEqual(self.db.query(Expense).count(), 3)

    def test_persistence_failure_does_not_abort_batch(self):
        store = FlakyStore(self.store, {0: LedgerInsertError("constraint")})
        classifier = StubClassifier(
            {"transactions": [expense(1, description="a"), expense(2, description="b")], "confidence": 0.9}
        )

        outcome = self.run_extract(classifier, store=store)

        self.assertEqual(outcome.persisted_count, 1)
        self.assertEqual(outcome.items[0].status, "failed")
        self.assertEqual(outcome.items[0].reason, "LedgerInsertError")
        self.assertEqual(outcome.persisted_records[0].description, "b")

    def test_one_unavailable_insert_is_not_escalated(self):
        store = FlakyStore(self.store, {0: LedgerUnavailableError("blip")})
        classifier = StubClassifier({"transactions": [expense(1), expense(2)], "confidence": 0.9})

        outcome = self.run_extract(classifier, store=store)

        self.assertEqual(outcome.persisted_count, 1)

    def test_store_unreachable_raises(self):
        store = FlakyStore(self.store, {0: LedgerUnavailableError("down"), 1: LedgerUnavailableError("down")})
        classifier = StubClassifier({"transactions": [expense(1), expense(2)], "confidence": 0.9})

        with self.assertRaises(LedgerUnavailableError):
            self.run_extract(classifier, store=store)

    def test_low_confidence_adds_advisory_even_when_saved(self):
        outcome = self.run_extract(StubClassifier({"transactions": [expense()], "confidence": 0.5}))
        self.assertEqual(outcome.persisted_count, 1)
        self.assertEqual(outcome.advisory_note, ADVISORY_NOTE)

    def test_low_confidence_adds_advisory_when_nothing_saved(self):
        outcome = self.run_extract(StubClassifier({"transactions": [], "confidence": 0.1}))
        self.assertEqual(outcome.advisory_note, ADVISORY_NOTE)

    def test_threshold_is_exclusive(self):
        outcome = self.run_extract(StubClassifier({"transactions": [expense()], "confidence": 0.7}))
        self.assertIsNone(outcome.advisory_note)

    def test_confidence_is_carried_through(self):
        outcome = self.run_extract(StubClassifier({"transactions": [expense("x")], "confidence": 0.83}))
        self.assertEqual(outcome.confidence, 0.83)

    def test_not_idempotent(self):
        classifier = StubClassifier({"transactions": [expense()], "confidence": 0.9})
        self.run_extract(classifier)
        self.run_extract(classifier)
        rows = self.db.query(Expense).all()
        self.assertEqual(len(rows), 2)
        self.assertNotEqual(rows[0].id, rows[1].id)

    def test_classifier_fallback_persists_nothing(self):
        outcome = self.run_extract(StubClassifier(output=ClassifierOutput.fallback("stub:error")))
        self.assertEqual(outcome.persisted_count, 0)
        self.assertTrue(outcome.classifier_failed)
        self.assertEqual(outcome.follow_up_questions, [FALLBACK_QUESTION])

    def test_classifier_receives_business_and_date(self):
        classifier = StubClassifier({"transactions": []})
        self.run_extract(classifier, "  paid rent  ")
        self.assertEqual(
            classifier.calls,
            [{"utterance": "paid rent", "business_id": str(self.business_id), "today": TODAY, "history": None}],
        )

    def test_currency_symbol_in_summary(self):
        outcome = self.run_extract(
            StubClassifier({"transactions": [expense("1234.5")], "confidence": 0.9}),
            currency="EUR",
        )
        self.assertEqual(outcome.summary_lines, ["Expense: €1,234.50 - Office supplies (Office Supplies)"])


class InputValidationTests(OrchestratorTestBase):
    def test_blank_utterance_rejected_before_classifier(self):
        classifier = StubClassifier({"transactions": [expense()]})
        for utterance in ("", "   ", "\n\t"):
            with self.subTest(utterance=utterance):
                with self.assertRaises(ExtractionInputError):
                    self.run_extract(classifier, utterance)
        self.assertEqual(classifier.calls, [])

    def test_missing_business_rejected(self):
        orchestrator = ExtractionOrchestrator(StubClassifier({}), self.store)
        with self.assertRaises(ExtractionInputError):
            asyncio.run(orchestrator.extract("paid rent", ""))


class SqlLedgerStoreTests(OrchestratorTestBase):
    def test_insert_writes_audit_entry(self):
        row = self.store.insert(
            TransactionKind.EXPENSE,
            {
                "amount": Decimal("12.00"),
                "date": TODAY,
                "category": "Meals",
                "description": "Lunch",
                "vendor": "Cafe",
            },
            business_id=self.business_id,
        )
        log = self.db.query(AuditLog).filter(AuditLog.action == "LEDGER_RECORD_CREATED").one()
        self.assertEqual(log.entity_type, "expense")
        self.assertEqual(log.actor_id, "user-1")
        self.assertEqual(log.new_value["amount"], "12.00")
        self.assertEqual(log.new_value["id"], str(row.id))

    def test_connectivity_error_maps_to_unavailable(self):
        with patch.object(self.db, "commit", side_effect=OperationalError("INSERT", {}, Exception("gone"))):
            with self.assertRaises(LedgerUnavailableError):
                self.store.insert(
                    TransactionKind.EXPENSE,
                    {"amount": Decimal("1.00"), "date": TODAY, "category": "c", "description": "d", "vendor": "v"},
                    business_id=self.business_id,
                )
        self.assertEqual(self.db.query(Expense).count(), 0)

    def test_constraint_violation_maps_to_insert_error(self):
        with self.assertRaises(LedgerInsertError):
            self.store.insert(
                TransactionKind.EXPENSE,
                {"amount": Decimal("1.00"), "date": TODAY, "category": "c", "description": "d", "vendor": None},
                business_id=self.business_id,
            )
        # Session is usable after the rollback.
        self.store.insert(
            TransactionKind.EXPENSE,
            {"amount": Decimal("1.00"), "date": TODAY, "category": "c", "description": "d", "vendor": "v"},
            business_id=self.business_id,
        )
        self.assertEqual(self.db.query(Expense).count(), 1)
