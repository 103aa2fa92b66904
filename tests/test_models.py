"""Tests for models and the execution recorder."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from models.automation import AutomationRule, TriggerType
from models.candidate import ClientCandidate, MeetingCandidate, candidate_adapter
from models.errors import PersistenceError
from models.identity import Identity
from models.report import ExecutionReport, LogLevel
from orchestrator.recorder import ExecutionRecorder
from services.supabase import DataError

from conftest import NOW


class TestTriggerType:
    """Tests for TriggerType."""

    def test_unknown_is_generic(self):
        """Unrecognized values classify as generic."""
        assert TriggerType.classify("nightly") is TriggerType.GENERIC
        assert TriggerType.classify(None) is TriggerType.GENERIC

    @pytest.mark.parametrize("trigger, sweep", [
        (TriggerType.MEETING_REMINDER, False),
        (TriggerType.GENERIC, False),
        (TriggerType.CLIENT_INACTIVE, True),
        (TriggerType.PROJECT_DELAYED, True),
    ])
    def test_sweep_triggers(self, trigger, sweep):
        """Only inactivity and delay triggers sweep."""
        assert trigger.is_sweep is sweep
        assert trigger.requires_selection is not sweep


class TestAutomationRule:
    """Tests for AutomationRule."""

    def test_from_row(self):
        """user_id maps to owner_id and nulls are tolerated."""
        rule = AutomationRule.from_row({
            "id": 12,
            "name": None,
            "trigger_type": "project_delayed",
            "actions": "[]",
            "execution_count": None,
            "user_id": "owner-1",
        })
        assert rule.id == "12"
        assert rule.name == ""
        assert rule.owner_id == "owner-1"
        assert rule.execution_count == 0
        assert rule.trigger is TriggerType.PROJECT_DELAYED

    def test_with_execution_never_decreases(self):
        """A stale store value cannot lower the counter."""
        rule = AutomationRule(id="r1", execution_count=5)
        assert rule.with_execution(3, NOW).execution_count == 6
        assert rule.with_execution(9, NOW).execution_count == 9
        assert rule.with_execution(None, NOW).last_executed == NOW
        assert rule.execution_count == 5


class TestCandidates:
    """Tests for the candidate union."""

    def test_discriminated_by_trigger_type(self):
        """Raw dicts validate into the right variant."""
        candidate = candidate_adapter.validate_python({
            "trigger_type": "meeting_reminder",
            "id": "m1",
            "start_time": NOW.isoformat(),
        })
        assert isinstance(candidate, MeetingCandidate)
        assert candidate.client_name == "Client non spécifié"

    def test_contact_projection(self):
        """Every variant exposes uniform contact info."""
        contact = ClientCandidate(id="c1", name="Ana", email="a@b.c", phone="06").contact
        assert (contact.id, contact.name, contact.email, contact.phone) == ("c1", "Ana", "a@b.c", "06")


class TestIdentity:
    """Tests for Identity.display_name."""

    @pytest.mark.parametrize("email, metadata, expected", [
        ("marie@studio.fr", {"full_name": "Marie Dupont"}, "Marie Dupont"),
        ("marie@studio.fr", {}, "marie"),
        ("", {}, "Équipe Clyra"),
    ])
    def test_display_name(self, email, metadata, expected):
        """full_name, then email local part, then default."""
        assert Identity(id="u1", email=email, metadata=metadata).display_name == expected


class TestExecutionReport:
    """Tests for ExecutionReport."""

    def test_summary_message(self):
        """The summary states both counts."""
        report = ExecutionReport(success_count=3, error_count=1)
        assert report.summary_message == "📊 Résumé : 3 action(s) réussie(s), 1 erreur(s)"
        assert report.total_actions == 4

    def test_lines_by_level(self):
        """Lines can be filtered by level."""
        report = ExecutionReport()
        report.append("ok", LogLevel.SUCCESS)
        report.append("ko", LogLevel.ERROR)
        assert [l.message for l in report.lines_at(LogLevel.ERROR)] == ["ko"]
        assert report.messages == ["ok", "ko"]


class TestExecutionRecorder:
    """Tests for ExecutionRecorder."""

    @pytest.mark.asyncio
    async def test_records_store_count(self, store):
        """The store's counter value is adopted."""
        store.executions["r1"] = 4
        rule = AutomationRule(id="r1", execution_count=4)

        updated = await ExecutionRecorder(store).record(rule, NOW)

        assert updated.execution_count == 5
        assert updated.last_executed == NOW
        assert store.executions["r1"] == 5

    @pytest.mark.asyncio
    async def test_failure_is_diagnostic_only(self, store):
        """A failing update is kept as last_error, never raised."""
        store.failures["increment_execution"] = DataError(code="500", message="db down")
        recorder = ExecutionRecorder(store)

        updated = await recorder.record(AutomationRule(id="r1", execution_count=2), NOW)

        assert updated.execution_count == 3
        assert isinstance(recorder.last_error, PersistenceError)
        assert "db down" in recorder.last_error.message

    @pytest.mark.asyncio
    async def test_raising_store_is_handled(self):
        """Even an exception from the store is contained."""
        db = MagicMock()
        db.increment_execution = AsyncMock(side_effect=ConnectionError("reset"))
        recorder = ExecutionRecorder(db)

        updated = await recorder.record(AutomationRule(id="r1"), NOW)

        assert updated.execution_count == 1
        assert recorder.last_error.recoverable is True
