from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import httpx
import pytest
import respx

from screenreader.core.settings import ReaderConfig, Settings
from screenreader.services.nightscout_client import NightscoutClient
from screenreader.services.polling import PollingService, backoff_delay
from screenreader.services.reader import CamAPSReader

from fakes import FakeHost, FakeOcr, no_sleep
from screens import block, dialog, main_screen, menu, node, rotate_button

NOW = datetime(2025, 1, 10, 12, 15, tzinfo=timezone.utc)


class Clock:
    def __init__(self, now=NOW):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


def _client():
    return NightscoutClient(
        base_url="https://example.com",
        client=httpx.AsyncClient(base_url="https://example.com"),
    )


def make_service(host, settings=None, repository=None, nightscout=None, ocr=None, clock=None):
    settings = settings or Settings()
    reader = CamAPSReader(host, config=settings.reader, ocr=ocr, sleep=no_sleep)
    return PollingService(
        reader,
        settings,
        repository=repository,
        nightscout=nightscout,
        clock=clock or Clock(),
        tz=ZoneInfo("UTC"),
    )


@pytest.mark.parametrize(
    "errors, minutes",
    [(0, 0), (1, 1), (2, 2), (3, 4), (4, 8), (5, 15), (12, 15)],
)
def test_backoff_delay(errors, minutes):
    assert backoff_delay(errors) == timedelta(minutes=minutes)


@pytest.mark.asyncio
async def test_cycle_stores_reading_locally(repository):
    host = FakeHost(main_screen(value="131"), dialog("Reservoir: 120 IE"))
    service = make_service(host, repository=repository)

    result = await service.run_cycle()

    assert result.skipped is None
    assert result.reading.value == 131
    assert not result.uploaded
    latest = await repository.latest()
    assert latest.reservoir == 120.0


@pytest.mark.asyncio
async def test_second_cycle_within_guard_is_skipped():
    clock = Clock()
    host = FakeHost(main_screen())
    service = make_service(host, clock=clock)

    assert (await service.run_cycle()).reading is not None
    clock.advance(seconds=10)
    assert (await service.run_cycle()).skipped == "too_soon"
    clock.advance(seconds=25)
    assert (await service.run_cycle()).reading is not None


@pytest.mark.asyncio
async def test_other_app_in_foreground_is_skipped():
    host = FakeHost(main_screen(), package="com.android.launcher3")
    result = await make_service(host).run_cycle()
    assert result.skipped == "wrong_package"
    assert host.clicks == []


@pytest.mark.asyncio
async def test_no_window_is_skipped():
    result = await make_service(FakeHost()).run_cycle()
    assert result.skipped == "no_window"


@pytest.mark.asyncio
async def test_rejected_screen_is_skipped():
    result = await make_service(FakeHost(main_screen(value="---"))).run_cycle()
    assert result.skipped == "no_reading"
    assert result.reading is None


@pytest.mark.asyncio
async def test_errors_back_off_and_success_resets(mocker):
    host = FakeHost(main_screen())
    service = make_service(host)
    acquire = mocker.patch.object(service.reader, "acquire_root", side_effect=RuntimeError("host gone"))

    for expected in (1, 2, 4):
        with pytest.raises(RuntimeError):
            await service.run_cycle()
        assert service.next_delay() == timedelta(minutes=expected)

    acquire.side_effect = None
    acquire.return_value = main_screen()
    await service.run_cycle()
    assert service.consecutive_errors == 0
    assert service.next_delay() == timedelta(minutes=5)


@pytest.mark.asyncio
async def test_stopped_service_does_nothing():
    host = FakeHost(main_screen())
    service = make_service(host)
    service.stop()
    assert service.stopped
    assert (await service.run_cycle()).skipped == "stopped"
    assert host.clicks == []


@pytest.mark.asyncio
@respx.mock
async def test_cycle_uploads_and_reconciles_ages(repository):
    entries = respx.post("https://example.com/api/v1/entries").mock(return_value=httpx.Response(200, json=[]))
    respx.post("https://example.com/api/v1/devicestatus").mock(return_value=httpx.Response(200, json={}))
    latest = respx.get("https://example.com/api/v1/treatments").mock(return_value=httpx.Response(200, json=[]))
    treatments = respx.post("https://example.com/api/v1/treatments").mock(return_value=httpx.Response(200, json=[]))

    clock = Clock()
    host = FakeHost(
        main_screen(),
        dialog("Reservoir: 120 IE"),
        main_screen(),
        menu("Anlage seit", "2d", "Füllung seit", "1d"),
    )
    service = make_service(host, repository=repository, nightscout=_client(), clock=clock)

    result = await service.run_cycle()

    assert result.uploaded
    assert result.age_checked
    assert entries.call_count == 1
    assert latest.call_count == 2
    assert treatments.call_count == 2
    assert await repository.unsynced() == []

    clock.advance(minutes=5)
    host.roots = [main_screen(), dialog("Reservoir: 118 IE")]
    result = await service.run_cycle()
    assert result.uploaded
    assert not result.age_checked
    assert entries.call_count == 2


@pytest.mark.asyncio
@respx.mock
async def test_upload_failure_keeps_reading_queued(repository):
    respx.post("https://example.com/api/v1/entries").mock(return_value=httpx.Response(502))
    host = FakeHost(main_screen())
    service = make_service(host, repository=repository, nightscout=_client())
    service.last_age_check_at = NOW

    result = await service.run_cycle()

    assert result.reading is not None
    assert not result.uploaded
    assert len(await repository.unsynced()) == 1
    assert service.consecutive_errors == 0


@pytest.mark.asyncio
@respx.mock
async def test_graph_meal_is_sent_once():
    respx.post("https://example.com/api/v1/entries").mock(return_value=httpx.Response(200, json=[]))
    respx.post("https://example.com/api/v1/devicestatus").mock(return_value=httpx.Response(200, json={}))
    treatments = respx.post("https://example.com/api/v1/treatments").mock(return_value=httpx.Response(200, json=[]))

    def screens():
        landscape = node(children=[rotate_button()])
        return [main_screen(with_rotate=True), dialog("Reservoir: 120 IE"), main_screen(with_rotate=True), landscape]

    ocr = FakeOcr([block("10:00", 80, 900), block("11:00", 280, 900), block("45g", 180, 300)])
    clock = Clock()
    host = FakeHost(*screens())
    settings = Settings(reader=ReaderConfig(graph_exploration_enabled=True))
    service = make_service(host, settings=settings, nightscout=_client(), ocr=ocr, clock=clock)
    service.last_age_check_at = NOW

    result = await service.run_cycle()
    assert result.meals_uploaded == 1
    assert treatments.call_count == 1

    clock.advance(minutes=5)
    host.roots = screens()
    result = await service.run_cycle()
    assert result.meals_uploaded == 0
    assert treatments.call_count == 1


@pytest.mark.asyncio
@respx.mock
async def test_age_check_reads_window_after_dialog_closed(mocker):
    respx.post("https://example.com/api/v1/entries").mock(return_value=httpx.Response(200, json=[]))
    respx.post("https://example.com/api/v1/devicestatus").mock(return_value=httpx.Response(200, json={}))
    respx.get("https://example.com/api/v1/treatments").mock(return_value=httpx.Response(200, json=[]))
    respx.post("https://example.com/api/v1/treatments").mock(return_value=httpx.Response(200, json=[]))

    before_dialog = main_screen(value="130")
    after_dialog = main_screen(value="130")
    host = FakeHost(before_dialog, dialog("Reservoir: 120 IE"), after_dialog, menu("Anlage seit", "2d"))
    service = make_service(host, nightscout=_client())
    age_info = mocker.spy(service.reader, "extract_age_info")

    result = await service.run_cycle()

    assert result.age_checked
    assert age_info.call_args.args[0] is after_dialog


@pytest.mark.asyncio
@respx.mock
async def test_age_check_waits_when_window_is_gone(mocker):
    respx.post("https://example.com/api/v1/entries").mock(return_value=httpx.Response(200, json=[]))
    respx.post("https://example.com/api/v1/devicestatus").mock(return_value=httpx.Response(200, json={}))
    host = FakeHost(main_screen(), dialog("Reservoir: 120 IE"), None)
    service = make_service(host, nightscout=_client())
    age_info = mocker.spy(service.reader, "extract_age_info")

    result = await service.run_cycle()

    assert result.uploaded
    assert not result.age_checked
    assert service.last_age_check_at is None
    age_info.assert_not_called()


@pytest.mark.asyncio
@respx.mock
async def test_devicestatus_failure_does_not_requeue_entry(repository):
    entries = respx.post("https://example.com/api/v1/entries").mock(return_value=httpx.Response(200, json=[]))
    respx.post("https://example.com/api/v1/devicestatus").mock(return_value=httpx.Response(502))
    host = FakeHost(main_screen(), dialog("Reservoir: 120 IE"))
    service = make_service(host, repository=repository, nightscout=_client())
    service.last_age_check_at = NOW

    result = await service.run_cycle()

    assert result.uploaded
    assert entries.call_count == 1
    assert await repository.unsynced() == []
    assert service.consecutive_errors == 0
