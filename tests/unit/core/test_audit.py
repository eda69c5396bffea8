"""Tests for the audit recorder and trail verification."""

from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest

from spendly.core.audit.reconcile import replay_decision, verify_audit_trail
from spendly.core.audit.recorder import AuditRecorder
from spendly.db.models.audit import AuditSeverity


T0 = datetime(2026, 1, 1, 12, 0, 0)


class MemoryAuditStore:
    """In-memory audit store."""

    def __init__(self, fail: bool = False):
        self.entries = []
        self.fail = fail

    def append(self, entry):
        if self.fail:
            raise RuntimeError("audit store offline")
        self.entries.append(entry)
        return entry

    def last_timestamp(self, entity_type, entity_id):
        times = [
            e.created_at for e in self.entries
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        return max(times) if times else None

    def list_for_entity(self, entity_id):
        return [e for e in self.entries if e.entity_id == entity_id]


class StoppedClock:
    def now(self):
        return T0


class ScriptedClock:
    def __init__(self, readings):
        self.readings = iter(readings)

    def now(self):
        return next(self.readings)


class TestAuditRecorder:
    """Test writing audit entries."""

    def test_record_entry(self):
        store = MemoryAuditStore()
        entry = AuditRecorder(store, StoppedClock()).record(
            "payout", "p1", "approve", "u2",
            previous_state={"status": "pending"},
            new_state={"status": "approved"},
            metadata={"ticket": "FIN-12"},
            ip_address="10.0.0.5",
            org_id="org-1",
        )

        assert store.entries == [entry]
        assert entry.id
        assert entry.performed_by == "u2"
        assert entry.extra_data == {"ticket": "FIN-12"}
        assert entry.ip_address == "10.0.0.5"
        assert entry.severity == "info"
        assert entry.created_at == T0

    def test_warning_severity_stored_as_value(self):
        entry = AuditRecorder(MemoryAuditStore(), StoppedClock()).record(
            "payout", "p1", "approve", "u1", {"status": "pending"}, {"status": "rejected"},
            severity=AuditSeverity.WARNING,
        )
        assert entry.severity == "warning"

    @pytest.mark.parametrize("field", ["entity_type", "entity_id", "action", "performed_by"])
    def test_required_fields(self, field):
        values = dict(entity_type="payout", entity_id="p1", action="approve", performed_by="u2")
        values[field] = ""
        with pytest.raises(ValueError, match=field):
            AuditRecorder(MemoryAuditStore(), StoppedClock()).record(
                previous_state=None, new_state=None, **values
            )

    def test_timestamps_strictly_increase_per_entity(self):
        """Test that a stalled clock still yields ordered entries."""
        store = MemoryAuditStore()
        recorder = AuditRecorder(store, StoppedClock())
        first = recorder.record("payout", "p1", "approve", "u2", None, None)
        second = recorder.record("payout", "p1", "approve", "u3", None, None)
        other = recorder.record("payout", "p2", "approve", "u3", None, None)

        assert second.created_at == first.created_at + timedelta(microseconds=1)
        assert other.created_at == T0

    def test_clock_going_backwards(self):
        store = MemoryAuditStore()
        recorder = AuditRecorder(store, ScriptedClock([T0, T0 - timedelta(seconds=30)]))

        first = recorder.record("expense", "e1", "submit", "system", None, None)
        second = recorder.record("expense", "e1", "approve", "manager-1", None, None)
        assert second.created_at > first.created_at

    def test_store_failure_propagates(self):
        with pytest.raises(RuntimeError):
            AuditRecorder(MemoryAuditStore(fail=True), StoppedClock()).record(
                "payout", "p1", "approve", "u2", None, None
            )


def entry(index, action, performed_by, before, after, entity_type="payout", thresholds=None, **state):
    previous_state = {"status": before, "amount": "7500", "currency": "USD", "version": index + 1}
    previous_state.update(state)
    return SimpleNamespace(
        id=f"a{index}",
        org_id="org-1",
        entity_type=entity_type,
        entity_id="p1",
        action=action,
        performed_by=performed_by,
        previous_state=previous_state,
        new_state={"status": after},
        extra_data={"thresholds": thresholds} if thresholds else {},
        created_at=T0 + timedelta(seconds=index),
    )


THRESHOLDS = {"auto_approve_threshold": "0", "dual_approval_threshold": "5000", "source": "default"}


class TestTrailVerification:
    """Test verifying stored audit trails."""

    def test_valid_dual_approval_trail(self):
        entries = [
            entry(0, "approve", "u2", "pending", "pending_second_approval",
                  thresholds=THRESHOLDS, initiated_by="u1"),
            entry(1, "approve", "u3", "pending_second_approval", "approved",
                  thresholds=THRESHOLDS, initiated_by="u1", first_approver="u2"),
        ]
        report = verify_audit_trail("p1", entries)

        assert report.valid, report.problems
        assert report.entry_count == 2
        assert report.final_status == "approved"
        assert report.closed

    def test_empty_trail(self):
        report = verify_audit_trail("p1", [])
        assert report.valid
        assert not report.closed

    def test_broken_chain(self):
        entries = [
            entry(0, "approve", "u2", "pending", "pending_second_approval", initiated_by="u1"),
            entry(1, "approve", "u3", "pending", "approved", initiated_by="u1"),
        ]
        report = verify_audit_trail("p1", entries)
        assert any("previous entry ended at" in p for p in report.problems)

    def test_illegal_transition(self):
        entries = [entry(0, "approve", "u2", "approved", "pending", initiated_by="u1")]
        report = verify_audit_trail("p1", entries)
        assert any("illegal transition" in p for p in report.problems)

    def test_out_of_order_timestamps(self):
        first = entry(0, "approve", "u2", "pending", "pending_second_approval", initiated_by="u1")
        second = entry(1, "approve", "u3", "pending_second_approval", "approved", initiated_by="u1")
        second.created_at = first.created_at - timedelta(seconds=5)
        report = verify_audit_trail("p1", [first, second])
        assert any("timestamp" in p for p in report.problems)

    def test_replay_mismatch(self):
        """Test a recorded approval the engine would have rejected."""
        tampered = entry(0, "approve", "u1", "pending", "approved", thresholds=THRESHOLDS, initiated_by="u1")
        report = verify_audit_trail("p1", [tampered])
        assert any("replay gives rejected" in p for p in report.problems)

    def test_replay_needs_thresholds(self):
        assert replay_decision(entry(0, "approve", "u2", "pending", "approved", initiated_by="u1")) is None

    def test_replay_expense(self):
        expense_entry = entry(
            0, "submit", "system", "pending", "approved",
            entity_type="expense", thresholds={"auto_approve_threshold": "10000", "dual_approval_threshold": "5000"},
            expense_type="request",
        )
        assert replay_decision(expense_entry) == "approved"

    @pytest.mark.parametrize("overrides", [
        {"before": "pending", "after": "teleported"},
        {"before": "limbo", "after": "approved"},
        {"entity_type": "invoice"},
    ])
    def test_unknown_values_reported(self, overrides):
        values = dict(before="pending", after="approved", entity_type="payout")
        values.update(overrides)
        bad = entry(0, "approve", "u2", values["before"], values["after"],
                    entity_type=values["entity_type"], initiated_by="u1")

        report = verify_audit_trail("p1", [bad])

        assert not report.valid
        assert any(p.endswith("unknown status or entity type") for p in report.problems)

    def test_replay_with_malformed_thresholds(self):
        broken = entry(0, "approve", "u2", "pending", "approved",
                       thresholds={"auto_approve_threshold": "lots", "dual_approval_threshold": "5000"},
                       initiated_by="u1")
        assert replay_decision(broken) is None
