"""
Tests for the Event System (Observer Pattern)

Tests notification payloads, the recording sink, and the dispatcher.
"""

from datetime import datetime
from unittest.mock import Mock

from token_ledger.events import (
    NULL_ACCOUNT, Approval, EventDispatcher, EventLog, LedgerEventType, Transfer
)
from token_ledger.ledger import TokenLedger


class TestNotifications:
    """Test Transfer and Approval payloads"""

    def test_transfer_fields(self):
        event = Transfer("0xa", "0xb", 7)

        assert event.event_type == LedgerEventType.TRANSFER
        assert event.args == ("0xa", "0xb", 7)
        assert isinstance(event.timestamp, datetime)
        assert len(event.event_id) > 0

    def test_equality_ignores_identity_and_time(self):
        assert Transfer("0xa", "0xb", 7) == Transfer("0xa", "0xb", 7)
        assert Transfer("0xa", "0xb", 7) != Transfer("0xa", "0xb", 8)
        assert Transfer("0xa", "0xb", 7).event_id != Transfer("0xa", "0xb", 7).event_id

    def test_transfer_serialization(self):
        data = Transfer(NULL_ACCOUNT, "0xb", 10).to_dict()

        assert data['event_type'] == "Transfer"
        assert data['from'] is None
        assert data['to'] == "0xb"
        assert data['amount'] == 10
        assert 'timestamp' in data and 'event_id' in data

    def test_approval_serialization(self):
        event = Approval("0xowner", "0xspender", 5)
        data = event.to_dict()

        assert event.event_type == LedgerEventType.APPROVAL
        assert data['event_type'] == "Approval"
        assert data['owner'] == "0xowner"
        assert data['spender'] == "0xspender"
        assert data['amount'] == 5

    def test_transfer_and_approval_never_equal(self):
        assert Transfer("0xa", "0xb", 1) != Approval("0xa", "0xb", 1)


class TestEventLog:
    """Test the recording sink"""

    def test_records_in_order(self):
        log = EventLog()
        first = Transfer("0xa", "0xb", 1)
        second = Approval("0xa", "0xb", 2)
        log.publish(first)
        log.publish(second)

        assert log.events == [first, second]
        assert list(log) == [first, second]
        assert len(log) == 2
        assert log.last() is second
        assert log.transfers() == [first]
        assert log.approvals() == [second]

    def test_clear(self):
        log = EventLog()
        log.publish(Transfer("0xa", "0xb", 1))
        log.clear()

        assert len(log) == 0
        assert log.last() is None

    def test_events_returns_copy(self):
        log = EventLog()
        log.publish(Transfer("0xa", "0xb", 1))
        log.events.clear()
        assert len(log) == 1


class TestEventDispatcher:
    """Test the event dispatcher"""

    def test_subscribe_and_publish_single_event(self):
        dispatcher = EventDispatcher()
        handler = Mock()
        dispatcher.subscribe(LedgerEventType.TRANSFER, handler)

        event = Transfer("0xa", "0xb", 1)
        dispatcher.publish(event)

        handler.assert_called_once_with(event)

    def test_handlers_only_receive_their_type(self):
        dispatcher = EventDispatcher()
        transfer_handler = Mock()
        approval_handler = Mock()
        dispatcher.subscribe(LedgerEventType.TRANSFER, transfer_handler)
        dispatcher.subscribe(LedgerEventType.APPROVAL, approval_handler)

        approval = Approval("0xa", "0xb", 3)
        dispatcher.publish(approval)

        transfer_handler.assert_not_called()
        approval_handler.assert_called_once_with(approval)

    def test_global_handler(self):
        dispatcher = EventDispatcher()
        handler = Mock()
        dispatcher.subscribe_all(handler)

        dispatcher.publish(Transfer("0xa", "0xb", 1))
        dispatcher.publish(Approval("0xa", "0xb", 1))

        assert handler.call_count == 2

    def test_unsubscribe(self):
        dispatcher = EventDispatcher()
        handler = Mock()
        dispatcher.subscribe(LedgerEventType.TRANSFER, handler)
        dispatcher.unsubscribe(LedgerEventType.TRANSFER, handler)

        dispatcher.publish(Transfer("0xa", "0xb", 1))

        handler.assert_not_called()

    def test_unsubscribe_unknown_handler_is_harmless(self):
        dispatcher = EventDispatcher()
        dispatcher.unsubscribe(LedgerEventType.APPROVAL, Mock())
        dispatcher.unsubscribe_all(Mock())
        assert dispatcher.get_handler_count() == 0

    def test_failing_handler_does_not_block_others(self):
        dispatcher = EventDispatcher()
        failing = Mock(side_effect=RuntimeError("boom"))
        healthy = Mock()
        dispatcher.subscribe(LedgerEventType.TRANSFER, failing)
        dispatcher.subscribe_all(healthy)

        event = Transfer("0xa", "0xb", 1)
        dispatcher.publish(event)

        failing.assert_called_once_with(event)
        healthy.assert_called_once_with(event)

    def test_handler_counts_and_clear(self):
        dispatcher = EventDispatcher()
        dispatcher.subscribe(LedgerEventType.TRANSFER, Mock())
        dispatcher.subscribe(LedgerEventType.TRANSFER, Mock())
        dispatcher.subscribe_all(Mock())

        assert dispatcher.get_handler_count(LedgerEventType.TRANSFER) == 2
        assert dispatcher.get_handler_count(LedgerEventType.APPROVAL) == 0
        assert dispatcher.get_handler_count() == 3

        dispatcher.clear()
        assert dispatcher.get_handler_count() == 0


class TestLedgerIntegration:
    """Test the ledger publishing through a dispatcher"""

    def test_ledger_notifications_reach_subscribers(self):
        dispatcher = EventDispatcher()
        log = EventLog()
        dispatcher.subscribe_all(log.publish)

        ledger = TokenLedger(10, "0xowner", event_sink=dispatcher)
        ledger.approve("0xowner", "0xother", 5)
        ledger.connect("0xother").transfer_from("0xowner", "0xother", 3)

        assert [e.args for e in log] == [
            (None, "0xowner", 10),
            ("0xowner", "0xother", 5),
            ("0xowner", "0xother", 2),
            ("0xowner", "0xother", 3),
        ]
        assert [type(e) for e in log] == [Transfer, Approval, Approval, Transfer]
