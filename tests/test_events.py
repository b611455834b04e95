"""
tests/test_events.py

Notifications: one event per committed mutation, in commit order,
none for rejected calls.

Run:
    pytest tests/test_events.py -v
"""

import logging

import pytest

from supplyledger import (
    CallbackEventSink,
    EventType,
    FanoutEventSink,
    Journal,
    LedgerEvent,
    LoggingEventSink,
    MemoryEventSink,
    NotAuthorized,
    ProductLedger,
    ProductStatus,
)


ADMIN        = "0xadmin"
MANUFACTURER = "0xmanufacturer"
DISTRIBUTOR  = "0xdistributor"

FIXED_TS = "2024-03-01T12:00:00.000Z"


@pytest.fixture
def sink():
    return MemoryEventSink()


@pytest.fixture
def ledger(sink):
    return ProductLedger(admin=ADMIN, sink=sink, clock=lambda: FIXED_TS)


class TestEventPayloads:

    def test_participant_authorized(self, ledger, sink):
        ledger.authorize_participant(ADMIN, MANUFACTURER)
        event = sink.last()
        assert event.event_type == EventType.PARTICIPANT_AUTHORIZED
        assert event.args == {"participant": MANUFACTURER}
        assert event.timestamp == FIXED_TS

    def test_participant_revoked(self, ledger, sink):
        ledger.authorize_participant(ADMIN, MANUFACTURER)
        ledger.revoke_participant(ADMIN, MANUFACTURER)
        assert sink.last().event_type == EventType.PARTICIPANT_REVOKED
        assert sink.last().args == {"participant": MANUFACTURER}

    def test_product_registered_names_the_caller_as_manufacturer(self, ledger, sink):
        ledger.authorize_participant(ADMIN, MANUFACTURER)
        ledger.register_product(MANUFACTURER, 1001, "Organic Coffee", "Ethiopian Farms")
        event = sink.last()
        assert event.event_type == EventType.PRODUCT_REGISTERED
        assert event.args == {
            "product_id":   1001,
            "product_name": "Organic Coffee",
            "manufacturer": MANUFACTURER,
        }

    def test_status_updated(self, ledger, sink):
        ledger.authorize_participant(ADMIN, MANUFACTURER)
        ledger.register_product(MANUFACTURER, 1001, "Organic Coffee", "Ethiopian Farms")
        ledger.update_status(MANUFACTURER, 1001, "InTransit", "Warehouse A")
        event = sink.last()
        assert event.event_type == EventType.STATUS_UPDATED
        assert event.args == {
            "product_id": 1001,
            "status":     ProductStatus.IN_TRANSIT,
            "location":   "Warehouse A",
            "updated_by": MANUFACTURER,
        }

    def test_ownership_transferred(self, ledger, sink):
        for p in (MANUFACTURER, DISTRIBUTOR):
            ledger.authorize_participant(ADMIN, p)
        ledger.register_product(MANUFACTURER, 1001, "Organic Coffee", "Ethiopian Farms")
        ledger.transfer_ownership(MANUFACTURER, 1001, DISTRIBUTOR)
        event = sink.last()
        assert event.event_type == EventType.OWNERSHIP_TRANSFERRED
        assert event.args == {
            "product_id":     1001,
            "previous_owner": MANUFACTURER,
            "new_owner":      DISTRIBUTOR,
        }

    def test_to_dict_flattens_args(self):
        event = LedgerEvent(
            event_type= EventType.PARTICIPANT_AUTHORIZED,
            args=       {"participant": "0xp"},
            timestamp=  FIXED_TS,
            sequence=   3,
        )
        assert event.to_dict() == {
            "type":        "ParticipantAuthorized",
            "timestamp":   FIXED_TS,
            "participant": "0xp",
            "sequence":    3,
        }

    def test_to_dict_omits_missing_sequence(self):
        event = LedgerEvent(EventType.PARTICIPANT_REVOKED, {"participant": "0xp"}, FIXED_TS)
        assert "sequence" not in event.to_dict()


class TestEventDelivery:

    def test_one_event_per_mutation_in_order(self, ledger, sink):
        ledger.authorize_participant(ADMIN, MANUFACTURER)
        ledger.register_product(MANUFACTURER, 1, "A", "F")
        ledger.update_status(MANUFACTURER, 1, 1, "W")
        ledger.update_status(MANUFACTURER, 1, 2, "S")
        assert [e.event_type for e in sink.events] == [
            EventType.PARTICIPANT_AUTHORIZED,
            EventType.PRODUCT_REGISTERED,
            EventType.STATUS_UPDATED,
            EventType.STATUS_UPDATED,
        ]

    def test_rejection_emits_nothing(self, ledger, sink):
        with pytest.raises(NotAuthorized):
            ledger.register_product("0xstranger", 1, "A", "F")
        assert sink.events == []

    def test_sequence_is_none_without_journal(self, ledger, sink):
        ledger.authorize_participant(ADMIN, MANUFACTURER)
        assert sink.last().sequence is None

    def test_sequence_follows_journal(self, sink):
        ledger = ProductLedger(admin=ADMIN, journal=Journal(), sink=sink)
        ledger.authorize_participant(ADMIN, MANUFACTURER)
        ledger.register_product(MANUFACTURER, 1, "A", "F")
        assert [e.sequence for e in sink.events] == [1, 2]

    def test_sink_may_read_the_ledger(self):
        seen = []
        holder = {}

        def on_event(event):
            if event.event_type == EventType.PRODUCT_REGISTERED:
                seen.append(holder["ledger"].get_product(event.args["product_id"]).product_name)

        ledger = ProductLedger(admin=ADMIN, sink=CallbackEventSink(on_event))
        holder["ledger"] = ledger
        ledger.register_product(ADMIN, 5, "Cocoa", "Ghana Co-op")
        assert seen == ["Cocoa"]

    def test_failing_sink_does_not_undo_mutation(self, caplog):
        def explode(event):
            raise RuntimeError("downstream unavailable")

        ledger = ProductLedger(admin=ADMIN, sink=CallbackEventSink(explode))
        with caplog.at_level(logging.ERROR, logger="supplyledger"):
            ledger.register_product(ADMIN, 5, "Cocoa", "Ghana Co-op")
        assert ledger.total_products() == 1
        assert "event sink failed" in caplog.text


class TestSinks:

    def test_memory_sink_filters_and_clears(self, ledger, sink):
        ledger.authorize_participant(ADMIN, MANUFACTURER)
        ledger.register_product(MANUFACTURER, 1, "A", "F")
        assert len(sink.of_type(EventType.PRODUCT_REGISTERED)) == 1
        sink.clear()
        assert sink.events == []
        with pytest.raises(LookupError):
            sink.last()

    def test_fanout_isolates_failing_sink(self, caplog):
        good = MemoryEventSink()

        def explode(event):
            raise RuntimeError("boom")

        fanout = FanoutEventSink([CallbackEventSink(explode)])
        fanout.add(good)
        ledger = ProductLedger(admin=ADMIN, sink=fanout)
        with caplog.at_level(logging.ERROR, logger="supplyledger"):
            ledger.authorize_participant(ADMIN, MANUFACTURER)
        assert len(good.events) == 1
        assert "CallbackEventSink failed" in caplog.text

    def test_logging_sink(self, caplog):
        ledger = ProductLedger(admin=ADMIN, sink=LoggingEventSink(), clock=lambda: FIXED_TS)
        with caplog.at_level(logging.INFO, logger="supplyledger.events"):
            ledger.authorize_participant(ADMIN, MANUFACTURER)
        assert f"ParticipantAuthorized participant={MANUFACTURER} at={FIXED_TS}" in caplog.text

    def test_mutation_logged_once_at_info(self, caplog):
        ledger = ProductLedger(admin=ADMIN, sink=LoggingEventSink(), clock=lambda: FIXED_TS)
        with caplog.at_level(logging.INFO, logger="supplyledger"):
            ledger.authorize_participant(ADMIN, MANUFACTURER)
        info = [
            r for r in caplog.records
            if r.levelno == logging.INFO and MANUFACTURER in r.getMessage()
        ]
        assert [r.name for r in info] == ["supplyledger.events"]
