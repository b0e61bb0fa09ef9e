import json
from datetime import datetime, timedelta, timezone

import httpx
import pytest
import respx

from screenreader.models.ages import InsulinInfo, SensorInfo
from screenreader.services.age_reconciler import AgeReconciler, ReconcileAction, decide
from screenreader.services.nightscout_client import NightscoutClient

LOCAL = datetime(2025, 1, 5, 8, 0, tzinfo=timezone.utc)


def test_no_remote_event_uploads():
    decision = decide(LOCAL, None)
    assert decision.action == ReconcileAction.UPLOADED_NO_PREVIOUS
    assert decision.message == "uploaded (no previous SAGE)"
    assert decision.needs_upload


def test_large_difference_updates():
    decision = decide(LOCAL, LOCAL - timedelta(hours=3), label="IAGE")
    assert decision.action == ReconcileAction.UPDATED
    assert decision.message == "updated (diff was 3.0h)"
    assert decision.diff_hours == pytest.approx(3.0)


def test_within_tolerance_is_in_sync():
    decision = decide(LOCAL, LOCAL + timedelta(minutes=45))
    assert decision.action == ReconcileAction.IN_SYNC
    assert decision.message == "in_sync"
    assert not decision.needs_upload


def test_exactly_at_tolerance_is_in_sync():
    assert decide(LOCAL, LOCAL - timedelta(hours=1.5)).action == ReconcileAction.IN_SYNC


def _reconciler():
    client = NightscoutClient(
        base_url="https://example.com",
        client=httpx.AsyncClient(base_url="https://example.com"),
    )
    return AgeReconciler(client)


@pytest.mark.asyncio
@respx.mock
async def test_sage_uploaded_when_remote_is_stale():
    respx.get("https://example.com/api/v1/treatments").mock(
        return_value=httpx.Response(200, json=[{"eventType": "Sensor Start", "created_at": "2024-12-25T08:00:00Z"}])
    )
    upload = respx.post("https://example.com/api/v1/treatments").mock(return_value=httpx.Response(200, json=[]))

    decision = await _reconciler().check_and_update_sage(SensorInfo(serial_number="ABC123", sensor_start_time=LOCAL))

    assert decision.action == ReconcileAction.UPDATED
    [treatment] = json.loads(upload.calls.last.request.content)
    assert treatment["eventType"] == "Sensor Start"
    assert treatment["created_at"] == "2025-01-05T08:00:00.000Z"
    assert treatment["notes"] == "Freestyle Libre 3 Plus - ABC123"


@pytest.mark.asyncio
@respx.mock
async def test_iage_in_sync_does_not_upload():
    route = respx.get("https://example.com/api/v1/treatments").mock(
        return_value=httpx.Response(200, json=[{"eventType": "Insulin Change", "date": 1736064000000}])
    )

    decision = await _reconciler().check_and_update_iage(InsulinInfo(fill_time=LOCAL + timedelta(minutes=10)))

    assert decision.action == ReconcileAction.IN_SYNC
    assert route.calls.last.request.url.params["find[eventType][$regex]"] == "Insulin"
    assert len(respx.calls) == 1


@pytest.mark.asyncio
@respx.mock
async def test_iage_uploaded_without_previous_event():
    respx.get("https://example.com/api/v1/treatments").mock(return_value=httpx.Response(200, json=[]))
    upload = respx.post("https://example.com/api/v1/treatments").mock(return_value=httpx.Response(200, json=[]))

    decision = await _reconciler().check_and_update_iage(InsulinInfo(fill_time=LOCAL))

    assert decision.message == "uploaded (no previous IAGE)"
    [treatment] = json.loads(upload.calls.last.request.content)
    assert treatment["eventType"] == "Insulin Change"


@pytest.mark.asyncio
async def test_missing_local_time_is_skipped():
    reconciler = _reconciler()
    assert await reconciler.check_and_update_sage(SensorInfo()) is None
    assert await reconciler.check_and_update_iage(InsulinInfo()) is None
