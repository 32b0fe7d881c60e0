from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from plodlog.dao.document_store import dumps, loads
from plodlog.domain import (
    ActivityType,
    LogEntry,
    LoggedMetric,
    MetricDefinition,
    OperationalRole,
    ShiftType,
    User,
)
from plodlog.domain.enums import parse_enum

START = datetime(2025, 3, 3, 6, 0, tzinfo=timezone.utc)


def _entry(**overrides) -> LogEntry:
    definition = MetricDefinition(id="def_holes", name="Holes Drilled", unit="count", linked_activity_type_ids=("drill",))
    fields = dict(
        activity=ActivityType(id="drill", name="Drilling"),
        user=User(id="jumbo01", name="John Doe", role=OperationalRole.OPERATOR, pin="11111"),
        start_time=START,
        end_time=START + timedelta(minutes=45),
        shift=ShiftType.NIGHT,
        metrics=[LoggedMetric.capture(definition, "42")],
        coworker_ids=["super01"],
    )
    fields.update(overrides)
    return LogEntry.build(**fields).with_id("log1")


def test_enum_names_parse_case_insensitively():
    assert parse_enum(OperationalRole, "supervisor") is OperationalRole.SUPERVISOR
    assert OperationalRole.from_name("OperationalRole.Admin") is OperationalRole.ADMIN
    assert ShiftType.from_name("Afternoon") is ShiftType.AFTERNOON


def test_unknown_enum_text_falls_back_to_other():
    assert OperationalRole.from_name("Geologist") is OperationalRole.OTHER
    assert ShiftType.from_name(None) is ShiftType.OTHER


def test_shift_display_strings():
    assert ShiftType.DAY.display == "Day Shift"
    assert ShiftType.OTHER.display == "Other"
    assert OperationalRole.TRAINEE.display == "Trainee"


def test_log_entry_duration_is_derived_from_times():
    entry = _entry()
    assert entry.duration_seconds == 45 * 60
    assert entry.user_name == "John Doe"
    assert entry.role is OperationalRole.OPERATOR


def test_log_entry_rejects_end_before_start():
    with pytest.raises(ValueError):
        _entry(end_time=START - timedelta(seconds=1))


def test_log_entry_document_round_trip_is_lossless():
    entry = _entry()
    restored = LogEntry.from_document(loads(dumps(entry.to_document())))
    assert restored == entry


def test_naive_instants_are_treated_as_utc():
    entry = _entry(start_time=START.replace(tzinfo=None), end_time=(START + timedelta(hours=1)).replace(tzinfo=None))
    assert entry.start_time.tzinfo is not None
    assert entry.duration_seconds == 3600


def test_user_document_uses_role_name_and_keeps_signature():
    user = User(id="u1", name="Ann", role=OperationalRole.TRAINEE, permitted_activity_type_ids=("drill",), pin="12345", signature="aGk=")
    doc = user.to_document()
    assert doc["operationalRole"] == "Trainee"
    assert User.from_document(doc) == user


def test_public_user_view_hides_pin():
    user = User(id="u1", name="Ann", role=OperationalRole.OPERATOR)
    view = user.as_public_dict()
    assert "pin" not in view
    assert view["pin_reset_pending"] is True
    assert view["has_signature"] is False


def test_metric_definition_applies_only_to_linked_activities():
    definition = MetricDefinition(id="d", name="Bolts", unit="count", linked_activity_type_ids=("bolt",))
    assert definition.applies_to("bolt")
    assert not definition.applies_to("drill")
