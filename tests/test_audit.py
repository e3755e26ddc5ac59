"""
Test suite for audit module

Tests hash-chained audit trail, tamper detection and integrity verification.
"""

from datetime import datetime, timezone, timedelta

from token_ledger.audit import AuditTrail, AuditEvent, AuditEventType


class TestAuditEvent:
    """Test AuditEvent functionality"""

    def make_event(self, **overrides):
        now = datetime.now(timezone.utc)
        fields = dict(
            id="AUDIT001",
            created_at=now,
            event_type=AuditEventType.TRANSFER,
            entity_type="account",
            entity_id="0xowner",
            previous_hash="",
            current_hash="",
            metadata={"from": "0xowner", "to": "0xother", "amount": 2},
            caller="0xowner"
        )
        fields.update(overrides)
        return AuditEvent(**fields)

    def test_metadata_serialization(self):
        """Integers become strings so uint256 amounts survive JSON consumers"""
        event = self.make_event(metadata={
            "amount": 2 ** 255,
            "flag": True,
            "when": datetime(2024, 1, 1, tzinfo=timezone.utc),
            "kind": AuditEventType.APPROVAL,
            "nested": {"values": [1, 2]},
            "account": ("wallet", 7),
        })

        assert event.metadata["amount"] == str(2 ** 255)
        assert event.metadata["flag"] is True
        assert event.metadata["when"] == "2024-01-01T00:00:00+00:00"
        assert event.metadata["kind"] == "approval"
        assert event.metadata["nested"] == {"values": ["1", "2"]}
        assert event.metadata["account"] == ["wallet", "7"]

    def test_hash_is_deterministic(self):
        event = self.make_event()
        assert event.calculate_hash() == event.calculate_hash()
        assert len(event.calculate_hash()) == 64

    def test_hash_changes_with_content(self):
        event = self.make_event()
        original = event.calculate_hash()
        event.entity_id = "0xother"
        assert event.calculate_hash() != original

    def test_verify_hash(self):
        event = self.make_event()
        event.current_hash = event.calculate_hash()
        assert event.verify_hash()

        event.metadata["amount"] = "2000"
        assert not event.verify_hash()

    def test_to_dict(self):
        data = self.make_event().to_dict()
        assert data['event_type'] == "transfer"
        assert data['caller'] == "0xowner"
        assert data['metadata']['amount'] == "2"


class TestAuditTrail:
    """Test AuditTrail functionality"""

    def setup_method(self):
        """Set up test fixtures"""
        self.audit_trail = AuditTrail()

    def test_log_first_event(self):
        event = self.audit_trail.log_event(
            event_type=AuditEventType.LEDGER_CREATED,
            entity_type="ledger",
            entity_id="BPT",
            metadata={"total_supply": 10},
            caller="0xowner"
        )

        assert event.previous_hash == ""
        assert len(event.current_hash) == 64
        assert event.caller == "0xowner"
        assert self.audit_trail.get_event_by_id(event.id) is event
        assert self.audit_trail.get_latest_hash() == event.current_hash

    def test_chain_links_events(self):
        first = self.audit_trail.log_event(AuditEventType.TRANSFER, "account", "0xa")
        second = self.audit_trail.log_event(AuditEventType.APPROVAL, "account", "0xa")

        assert second.previous_hash == first.current_hash
        assert self.audit_trail.count_events() == 2

    def test_non_string_identities_are_stringified(self):
        event = self.audit_trail.log_event(AuditEventType.TRANSFER, "account", 42, caller=7)

        assert event.entity_id == "42"
        assert event.caller == "7"
        assert self.audit_trail.get_events_for_entity("account", 42) == [event]

    def test_get_events_for_entity(self):
        self.audit_trail.log_event(AuditEventType.TRANSFER, "account", "0xa")
        self.audit_trail.log_event(AuditEventType.TRANSFER, "account", "0xb")
        last = self.audit_trail.log_event(AuditEventType.APPROVAL, "account", "0xa")

        events = self.audit_trail.get_events_for_entity("account", "0xa")
        assert len(events) == 2
        assert self.audit_trail.get_events_for_entity("account", "0xa", limit=1) == [last]

    def test_get_events_by_type_and_time(self):
        self.audit_trail.log_event(AuditEventType.TRANSFER, "account", "0xa")
        self.audit_trail.log_event(AuditEventType.APPROVAL, "account", "0xa")
        self.audit_trail.log_event(AuditEventType.TRANSFER, "account", "0xb")

        assert len(self.audit_trail.get_events_by_type(AuditEventType.TRANSFER)) == 2
        assert len(self.audit_trail.get_events_by_type(AuditEventType.TRANSFER, limit=1)) == 1

        future = datetime.now(timezone.utc) + timedelta(hours=1)
        assert self.audit_trail.get_all_events(start_time=future) == []
        assert len(self.audit_trail.get_all_events(end_time=future)) == 3

    def test_verify_integrity_empty(self):
        result = self.audit_trail.verify_integrity()
        assert result['valid']
        assert result['total_events'] == 0

    def test_verify_integrity_valid_chain(self):
        for entity in ("0xa", "0xb", "0xc"):
            self.audit_trail.log_event(AuditEventType.TRANSFER, "account", entity)

        result = self.audit_trail.verify_integrity()
        assert result['valid']
        assert result['total_events'] == 3
        assert result['details']['event_types'] == ["transfer"]

    def test_detects_tampered_event(self):
        self.audit_trail.log_event(AuditEventType.TRANSFER, "account", "0xa", metadata={"amount": 1})
        tampered = self.audit_trail.log_event(AuditEventType.TRANSFER, "account", "0xa", metadata={"amount": 2})

        tampered.metadata["amount"] = "2000"

        result = self.audit_trail.verify_integrity()
        assert not result['valid']
        assert result['hash_errors'][0]['event_id'] == tampered.id
        assert result['chain_breaks'] == []

    def test_detects_broken_chain(self):
        self.audit_trail.log_event(AuditEventType.TRANSFER, "account", "0xa")
        second = self.audit_trail.log_event(AuditEventType.TRANSFER, "account", "0xb")

        second.previous_hash = "0" * 64
        second.current_hash = second.calculate_hash()

        result = self.audit_trail.verify_integrity()
        assert not result['valid']
        assert result['chain_breaks'][0]['position'] == 1
