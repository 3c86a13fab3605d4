from dataclasses import dataclass
from decimal import Decimal

from django.test import TestCase
from django.utils import timezone

from core.domain.dispatcher import DomainEventDispatcher
from core.domain.events import DomainEvent
from core.exceptions import NegativeStockRejected, ReferenceInUse, ValidationFailed
from core.models import AuditLog, NumberingScheme
from core.services.audit import history_for, log_event
from core.services.numbering import generate_number_for_instance
from purchasing.models import PurchaseOrder


@dataclass(frozen=True)
class Pinged(DomainEvent):
    value: int


class NumberingTests(TestCase):
    def test_purchase_orders_get_yearly_three_digit_numbers(self):
        year = timezone.localtime().year

        first = generate_number_for_instance(PurchaseOrder(), field_name="po_number")
        second = generate_number_for_instance(PurchaseOrder(), field_name="po_number")

        self.assertEqual(first, f"PO-{year}-001")
        self.assertEqual(second, f"PO-{year}-002")
        self.assertTrue(
            NumberingScheme.objects.filter(model_label="purchasing.PurchaseOrder", field_name="po_number").exists()
        )

    def test_configured_scheme_wins_over_default(self):
        NumberingScheme.objects.create(
            model_label="purchasing.PurchaseOrder",
            field_name="po_number",
            pattern="LPO-{seq:05d}",
            reset=NumberingScheme.ResetPolicy.NEVER,
            start=100,
        )

        self.assertEqual(generate_number_for_instance(PurchaseOrder(), field_name="po_number"), "LPO-00100")


class DispatcherTests(TestCase):
    def setUp(self):
        self.dispatcher = DomainEventDispatcher()
        self.seen = []

    def test_handlers_run_in_registration_order(self):
        @self.dispatcher.register_handler(Pinged)
        def first(event):
            self.seen.append(("first", event.value))

        @self.dispatcher.register_handler(Pinged, critical=True)
        def second(event):
            self.seen.append(("second", event.value))

        self.dispatcher.emit(Pinged(value=3))

        self.assertEqual(self.seen, [("first", 3), ("second", 3)])

    def test_registering_twice_is_ignored(self):
        def handler(event):
            self.seen.append(event.value)

        self.dispatcher.register_handler(Pinged)(handler)
        self.dispatcher.register_handler(Pinged)(handler)
        self.dispatcher.emit(Pinged(value=1))

        self.assertEqual(self.seen, [1])
        self.assertEqual(self.dispatcher.handlers_for(Pinged), [handler])

    def test_best_effort_failure_is_logged_and_swallowed(self):
        @self.dispatcher.register_handler(Pinged)
        def broken(event):
            raise RuntimeError("boom")

        @self.dispatcher.register_handler(Pinged)
        def after(event):
            self.seen.append(event.value)

        with self.assertLogs("core.domain.dispatcher", level="ERROR"):
            self.dispatcher.emit(Pinged(value=7))

        self.assertEqual(self.seen, [7])

    def test_critical_failure_propagates(self):
        @self.dispatcher.register_handler(Pinged, critical=True)
        def broken(event):
            raise RuntimeError("boom")

        with self.assertRaises(RuntimeError):
            self.dispatcher.emit(Pinged(value=1))

    def test_best_effort_writes_are_undone_on_failure(self):
        @self.dispatcher.register_handler(Pinged)
        def half_done(event):
            log_event(action=AuditLog.Action.OTHER, message="half done")
            raise RuntimeError("boom")

        with self.assertLogs("core.domain.dispatcher", level="ERROR"):
            self.dispatcher.emit(Pinged(value=1))

        self.assertFalse(AuditLog.objects.filter(message="half done").exists())

    def test_emit_logs_event_name_and_payload(self):
        self.dispatcher.register_handler(Pinged)(lambda event: None)

        with self.assertLogs("core.domain.dispatcher", level="DEBUG") as logs:
            self.dispatcher.emit(Pinged(value=5))

        self.assertIn("Emitting event Pinged to 1 handler(s): {'value': 5}", logs.output[-1])
        self.assertEqual(Pinged(value=5).payload(), {"value": 5})


class AuditTests(TestCase):
    def test_log_event_records_target_and_extra(self):
        scheme = NumberingScheme.objects.create(
            model_label="purchasing.PurchaseOrder",
            field_name="po_number",
            pattern="PO-{seq:03d}",
        )

        entry = log_event(
            action=AuditLog.Action.UPDATE,
            message="Pattern changed.",
            actor="Zawadi",
            target=scheme,
            extra={"pattern": scheme.pattern},
        )

        self.assertEqual(entry.action, "update")
        self.assertEqual(entry.target, scheme)
        self.assertEqual(entry.extra, {"pattern": "PO-{seq:03d}"})
        self.assertEqual(list(history_for(scheme)), [entry])

    def test_unknown_action_is_rejected(self):
        with self.assertRaises(ValueError):
            log_event(action="teleport")


class ExceptionTests(TestCase):
    def test_validation_failed_keeps_field_errors(self):
        exc = ValidationFailed({"items.0.quantity": ["Quantity must be greater than zero."]})

        self.assertEqual(exc.code, "VALIDATION_FAILED")
        self.assertEqual(exc.field_errors, {"items.0.quantity": ["Quantity must be greater than zero."]})

    def test_reference_in_use_lists_references(self):
        exc = ReferenceInUse("Supplier 'Acme'", {"inventory items": 2})

        self.assertEqual(exc.references, {"inventory items": 2})
        self.assertIn("2 inventory items", exc.messages[0])
        self.assertIsInstance(exc, ValidationFailed)

    def test_negative_stock_message(self):
        exc = NegativeStockRejected(5, Decimal("3.000"), Decimal("-4.000"))

        self.assertEqual(exc.code, "NEGATIVE_STOCK_REJECTED")
        self.assertIn("-1.000", str(exc))
