"""Report lifecycle: state transitions, history and notification targeting"""
import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest

from domain.errors import NotFoundError, StorageError, ValidationError
from domain.lifecycle import (
    ReportLifecycle,
    Responder,
    active_on_the_way_count,
    responders_en_route,
)
from domain.models.report import ReportCreate, ResponderActionRead


def _entry(responder_id, action):
    return ResponderActionRead(
        responder_id=responder_id,
        responder_name=responder_id.title(),
        action=action,
        timestamp=datetime.now(timezone.utc),
    )


async def test_fire_report_end_to_end(lifecycle, connect, fire_report, maria):
    juan = connect(resident="juan")
    maria_conn = connect(responder="maria", name="Maria Santos")
    pedro_conn = connect(responder="pedro", name="Pedro Reyes")

    report = await lifecycle.create_report(fire_report)
    assert report.status == "pending"
    assert report.responders == []
    assert report.type == "Fire"

    report = await lifecycle.mark_on_the_way(report.id, maria)
    assert report.status == "on_the_way"
    assert [(r.action, r.responder_id) for r in report.responders] == [("on_the_way", "maria")]

    [notice] = juan.events("notify-resident")
    assert notice["data"]["responderName"] == "Maria Santos"
    assert notice["data"]["residentName"] == "Juan Dela Cruz"
    assert notice["data"]["type"] == "Fire"
    assert notice["data"]["reportId"] == str(report.id)
    assert pedro_conn.events("notify-on-the-way")
    assert maria_conn.messages == []

    report = await lifecycle.mark_responded(report.id, maria)
    assert report.status == "responded"
    assert report.resolved_at is not None
    assert len(juan.events("responded")) == 1
    assert len(pedro_conn.events("notify-responded")) == 1
    assert maria_conn.messages == []


async def test_concurrent_on_the_way_both_recorded(lifecycle, connect, fire_report, maria, pedro):
    juan = connect(resident="juan")
    report = await lifecycle.create_report(fire_report)

    await asyncio.gather(
        lifecycle.mark_on_the_way(report.id, maria),
        lifecycle.mark_on_the_way(report.id, pedro),
    )

    stored = await lifecycle.get_report(report.id)
    assert stored.status == "on_the_way"
    assert sorted(r.responder_id for r in stored.responders) == ["maria", "pedro"]

    names = sorted(m["data"]["responderName"] for m in juan.events("notify-resident"))
    assert names == ["Maria Santos", "Pedro Reyes"]


async def test_replayed_on_the_way_keeps_status(lifecycle, connect, fire_report, maria):
    juan = connect(resident="juan")
    report = await lifecycle.create_report(fire_report)

    first = await lifecycle.mark_on_the_way(report.id, maria)
    second = await lifecycle.mark_on_the_way(report.id, maria)

    assert first.status == second.status == "on_the_way"
    assert [r.action for r in second.responders] == ["on_the_way", "on_the_way"]
    assert len(juan.events("notify-resident")) == 2


async def test_arrived_without_on_the_way_is_history_only(lifecycle, connect, fire_report, maria):
    juan = connect(resident="juan")
    pedro_conn = connect(responder="pedro")
    report = await lifecycle.create_report(fire_report)

    report = await lifecycle.mark_arrived(report.id, maria)

    assert report.status == "pending"
    assert [r.action for r in report.responders] == ["arrived"]
    assert len(juan.events("arrived")) == 1
    assert len(pedro_conn.events("notify-arrived")) == 1


async def test_resolved_at_is_set_once(lifecycle, fire_report, maria, pedro):
    report = await lifecycle.create_report(fire_report)

    responded = await lifecycle.mark_responded(report.id, maria)
    again = await lifecycle.mark_responded(report.id, maria)
    declined = await lifecycle.decline(report.id, pedro)

    assert responded.resolved_at is not None
    assert again.resolved_at == responded.resolved_at
    assert declined.resolved_at == responded.resolved_at
    assert declined.status == "responded"
    assert [r.action for r in declined.responders] == ["responded", "responded", "declined"]


async def test_history_is_append_only(lifecycle, fire_report, maria, pedro):
    report = await lifecycle.create_report(fire_report)
    steps = [
        lambda: lifecycle.mark_on_the_way(report.id, maria),
        lambda: lifecycle.mark_arrived(report.id, maria),
        lambda: lifecycle.mark_on_the_way(report.id, pedro),
        lambda: lifecycle.mark_responded(report.id, maria),
        lambda: lifecycle.mark_arrived(report.id, pedro),
    ]

    previous = []
    for step in steps:
        current = (await step()).responders
        assert len(current) == len(previous) + 1
        assert [(r.action, r.timestamp, r.responder_id) for r in current[:-1]] == [
            (r.action, r.timestamp, r.responder_id) for r in previous
        ]
        previous = current


async def test_decline_keeps_report_and_notifies(lifecycle, connect, fire_report, maria):
    juan = connect(resident="juan")
    pedro_conn = connect(responder="pedro")
    report = await lifecycle.create_report(fire_report)

    declined = await lifecycle.decline(report.id, maria)

    assert declined.status == "declined"
    assert declined.resolved_at is not None
    assert (await lifecycle.get_report(report.id)).id == report.id
    assert len(juan.events("declined")) == 1
    assert len(pedro_conn.events("responder-declined")) == 1


async def test_follow_up_skips_responders_who_declined(lifecycle, connect, fire_report, maria, pedro):
    maria_conn = connect(responder="maria")
    pedro_conn = connect(responder="pedro")
    report = await lifecycle.create_report(fire_report)

    await lifecycle.mark_on_the_way(report.id, maria)
    await lifecycle.mark_on_the_way(report.id, pedro)
    await lifecycle.decline(report.id, maria)
    maria_conn.messages.clear()
    pedro_conn.messages.clear()

    targets = await lifecycle.request_follow_up(report.id)

    assert targets == ["pedro"]
    assert pedro_conn.events("resident-followup")
    assert maria_conn.messages == []


async def test_follow_up_matches_identity_not_display_name(lifecycle, connect, fire_report):
    twin_a = Responder(identity="resp-1", display_name="Ana Lim")
    conn_a = connect(responder="resp-1", name="Ana Lim")
    conn_b = connect(responder="resp-2", name="Ana Lim")
    report = await lifecycle.create_report(fire_report)

    await lifecycle.mark_on_the_way(report.id, twin_a)
    conn_a.messages.clear()
    conn_b.messages.clear()

    await lifecycle.request_follow_up(report.id)

    assert conn_a.events("resident-followup")
    assert conn_b.messages == []


async def test_cancel_broadcasts_to_everyone(lifecycle, connect, fire_report, maria):
    juan = connect(resident="juan")
    bystander = connect(responder="carlos")
    anonymous = connect()
    report = await lifecycle.create_report(fire_report)
    await lifecycle.mark_on_the_way(report.id, maria)

    outcome = await lifecycle.cancel(report.id, "False alarm")

    assert outcome.changed
    assert outcome.report.status == "cancelled"
    assert outcome.report.cancellation_reason == "False alarm"
    assert outcome.report.cancellation_time is not None
    assert outcome.active_responders == 1
    for conn in (juan, bystander, anonymous):
        [event] = conn.events("report-cancelled")
        assert event["data"]["cancellationReason"] == "False alarm"
        assert event["data"]["activeResponders"] == 1


async def test_second_cancel_is_a_no_op(lifecycle, connect, fire_report):
    bystander = connect(responder="carlos")
    report = await lifecycle.create_report(fire_report)

    first = await lifecycle.cancel(report.id, "False alarm")
    second = await lifecycle.cancel(report.id, "Changed my mind")

    assert not second.changed
    assert second.report.cancellation_reason == "False alarm"
    assert second.report.cancellation_time == first.report.cancellation_time
    assert len(bystander.events("report-cancelled")) == 1


async def test_cancel_without_reason_uses_default(lifecycle, fire_report):
    report = await lifecycle.create_report(fire_report)

    outcome = await lifecycle.cancel(report.id, "   ")

    assert outcome.report.cancellation_reason == "No reason provided"


async def test_late_action_after_cancel_keeps_cancelled(lifecycle, fire_report, maria):
    report = await lifecycle.create_report(fire_report)
    await lifecycle.cancel(report.id, None)

    late = await lifecycle.mark_responded(report.id, maria)

    assert late.status == "cancelled"
    assert late.resolved_at is None
    assert [r.action for r in late.responders] == ["responded"]


async def test_unknown_report_raises_not_found(lifecycle, connect, maria):
    bystander = connect(responder="pedro")

    with pytest.raises(NotFoundError):
        await lifecycle.mark_on_the_way(uuid4(), maria)
    with pytest.raises(NotFoundError):
        await lifecycle.cancel(uuid4(), "gone")
    with pytest.raises(NotFoundError):
        await lifecycle.request_follow_up(uuid4())

    assert bystander.messages == []


async def test_storage_failure_skips_fan_out(channel, connect, maria):
    bystander = connect(responder="pedro")
    store = AsyncMock()
    store.append_action.side_effect = StorageError("Failed to update report")
    lifecycle = ReportLifecycle(store, channel, ["fire"])

    with pytest.raises(StorageError):
        await lifecycle.mark_on_the_way(uuid4(), maria)

    assert bystander.messages == []


async def test_offline_resident_is_not_an_error(lifecycle, presence, broken_connection, fire_report, maria):
    presence.register_resident("juan", broken_connection)
    report = await lifecycle.create_report(fire_report)

    updated = await lifecycle.mark_on_the_way(report.id, maria)

    assert updated.status == "on_the_way"


@pytest.mark.parametrize(
    "changes",
    [
        {"latitude": None},
        {"longitude": None},
        {"type": "alien-invasion"},
        {"first_name": "  "},
        {"latitude": 95.0},
    ],
)
async def test_invalid_reports_are_rejected(lifecycle, store, fire_report, changes):
    payload = ReportCreate(**{**fire_report.model_dump(), **changes})

    with pytest.raises(ValidationError):
        await lifecycle.create_report(payload)

    assert await store.list() == []


def test_active_count_ignores_declined_responders():
    history = [
        _entry("maria", "on_the_way"),
        _entry("pedro", "on_the_way"),
        _entry("maria", "declined"),
        _entry("pedro", "on_the_way"),
        _entry("ana", "arrived"),
    ]

    assert active_on_the_way_count(history) == 2


def test_en_route_uses_latest_relevant_action():
    history = [
        _entry("maria", "on_the_way"),
        _entry("maria", "declined"),
        _entry("pedro", "on_the_way"),
        _entry("pedro", "arrived"),
        _entry("ana", "declined"),
        _entry("ana", "on_the_way"),
    ]

    assert sorted(responders_en_route(history)) == ["ana", "pedro"]


async def test_stats_count_by_status_and_type(lifecycle, fire_report, maria):
    first = await lifecycle.create_report(fire_report)
    await lifecycle.create_report(fire_report.model_copy(update={"type": "medical"}))
    await lifecycle.mark_on_the_way(first.id, maria)

    stats = await lifecycle.report_stats()

    assert stats["total"] == 2
    assert stats["pending"] == 1
    assert stats["on_the_way"] == 1
    assert stats["by_type"] == {"fire": 1, "medical": 1}


async def test_announcement_reaches_all_connections(lifecycle, connect):
    resident = connect(resident="juan")
    anonymous = connect()

    delivered = await lifecycle.announce("Evacuation center open at the gym", author="Admin")

    assert delivered == 2
    assert resident.events("public-announcement")[0]["data"]["message"] == "Evacuation center open at the gym"
    assert anonymous.events("public-announcement")

    with pytest.raises(ValidationError):
        await lifecycle.announce("  ")
