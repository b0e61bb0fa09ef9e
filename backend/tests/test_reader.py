from datetime import datetime, timedelta, timezone

import pytest

from screenreader.core.settings import ReaderConfig
from screenreader.services.main_screen import ExtractionOutcome
from screenreader.services.reader import CamAPSReader

from fakes import FakeHost, FakeOcr, no_sleep
from screens import block, dialog, main_screen, menu, node, rotate_button

NOW = datetime(2025, 1, 10, 12, 15, tzinfo=timezone.utc)


def make_reader(host, ocr=None):
    return CamAPSReader(host, config=ReaderConfig(), ocr=ocr, sleep=no_sleep)


@pytest.mark.asyncio
async def test_acquire_root_retries():
    screen = main_screen()
    host = FakeHost(None, None, screen)
    assert await make_reader(host).acquire_root() is screen


@pytest.mark.asyncio
async def test_acquire_root_gives_up():
    host = FakeHost()
    assert await make_reader(host).acquire_root(attempts=2) is None


@pytest.mark.asyncio
async def test_extract_data_enriches_from_dialog_and_closes_it():
    screen = main_screen(value="145")
    info = dialog("Aktives Insulin: 1,5 IE", "Reservoir: 120 IE", "Pumpenbatterie: 80 %", "Bolus: 2,0 IE vor 3 Minuten")
    host = FakeHost(info)

    reading = await make_reader(host).extract_data(screen, NOW)

    assert reading.value == 145
    assert reading.active_insulin == 1.5
    assert reading.reservoir == 120.0
    assert reading.pump_battery == 80
    assert reading.bolus_amount == 2.0
    assert reading.bolus_minutes_ago == 3
    assert [n.content_description for n in host.clicks] == ["Hilfe", "Schließen"]
    assert host.backs == 0


@pytest.mark.asyncio
async def test_dialog_read_retries_while_window_settles():
    host = FakeHost(None, dialog("Reservoir: 120 IE"))
    reading = await make_reader(host).extract_data(main_screen(), NOW)
    assert reading.reservoir == 120.0
    assert [n.content_description for n in host.clicks] == ["Hilfe", "Schließen"]
    assert host.backs == 0


@pytest.mark.asyncio
async def test_dialog_without_close_button_uses_back():
    host = FakeHost(dialog("Reservoir: 120 IE", close=False))
    reading = await make_reader(host).extract_data(main_screen(), NOW)
    assert reading.reservoir == 120.0
    assert host.backs == 1


@pytest.mark.asyncio
async def test_dialog_failure_degrades_to_main_screen_reading():
    host = FakeHost(dialog("Reservoir: 120 IE"))
    host.root_error = RuntimeError("window vanished")

    reading = await make_reader(host).extract_data(main_screen(value="99"), NOW)

    assert reading.value == 99
    assert reading.reservoir is None
    assert host.backs == 1


@pytest.mark.asyncio
async def test_info_click_failure_returns_main_screen_reading():
    host = FakeHost(dialog("Reservoir: 120 IE"))
    host.click_result = False
    reading = await make_reader(host).extract_data(main_screen(), NOW)
    assert reading.value == 123
    assert reading.reservoir is None
    assert len(host.clicks) == 1


@pytest.mark.asyncio
async def test_rejected_main_screen_touches_nothing():
    host = FakeHost()
    reader = make_reader(host)

    assert await reader.extract_data(main_screen(value="---"), NOW) is None
    assert reader.last_result.outcome == ExtractionOutcome.SAFETY_REJECTION
    assert host.clicks == []


@pytest.mark.asyncio
async def test_extract_age_info_opens_and_closes_menu():
    host = FakeHost(menu("Anlage seit", "2d 3h", "Füllung seit", "1d"))

    info = await make_reader(host).extract_age_info(main_screen(), NOW)

    assert info.sensor_info.sensor_start_time == NOW - timedelta(days=2, hours=3)
    assert info.insulin_info.fill_time == NOW - timedelta(days=1)
    assert [n.content_description for n in host.clicks] == ["Offene Optionen", "Geschlossene Optionen"]


@pytest.mark.asyncio
async def test_age_menu_read_retries_while_window_settles():
    host = FakeHost(None, None, menu("Anlage seit", "2d 3h"))
    info = await make_reader(host).extract_age_info(main_screen(), NOW)
    assert info.sensor_info.sensor_start_time == NOW - timedelta(days=2, hours=3)
    assert host.clicks[-1].content_description == "Geschlossene Optionen"


@pytest.mark.asyncio
async def test_age_menu_that_never_appears_presses_back():
    host = FakeHost()
    assert await make_reader(host).extract_age_info(main_screen(), NOW) is None
    assert len(host.clicks) == 1
    assert host.backs == 1


@pytest.mark.asyncio
async def test_age_menu_falls_back_to_back_arrow():
    back_arrow = node(desc="Navigate up", clickable=True)
    host = FakeHost(node(children=[node(text="Anlage seit"), node(text="1d"), back_arrow]))

    info = await make_reader(host).extract_age_info(main_screen(), NOW)

    assert info.sensor_info is not None
    assert host.clicks[-1] is back_arrow


@pytest.mark.asyncio
async def test_age_menu_without_button():
    host = FakeHost()
    assert await make_reader(host).extract_age_info(main_screen(with_menu=False), NOW) is None
    assert host.clicks == []


@pytest.mark.asyncio
async def test_explore_graph_reads_carbs_and_rotates_back():
    landscape_rotate = rotate_button()
    landscape = node(children=[node(children=[landscape_rotate])])
    ocr = FakeOcr(
        [
            block("10:00", 80, 900),
            block("11:00", 280, 900),
            block("12:00", 480, 900),
            block("45g", 180, 300),
        ]
    )
    host = FakeHost(landscape)

    treatments = await make_reader(host, ocr).explore_graph(main_screen(with_rotate=True), NOW)

    assert [(t.timestamp, t.carbs_grams) for t in treatments] == [(NOW.replace(hour=10, minute=30), 45.0)]
    assert ocr.images == [b"png"]
    assert host.clicks[-1] is landscape_rotate


@pytest.mark.asyncio
async def test_explore_graph_without_screenshot_still_rotates_back():
    landscape_rotate = rotate_button()
    host = FakeHost(node(children=[landscape_rotate]), screenshot=None)

    treatments = await make_reader(host, FakeOcr([])).explore_graph(main_screen(with_rotate=True), NOW)

    assert treatments == []
    assert host.clicks[-1] is landscape_rotate


@pytest.mark.asyncio
async def test_explore_graph_needs_ocr_engine():
    host = FakeHost()
    assert await make_reader(host).explore_graph(main_screen(with_rotate=True), NOW) == []
    assert host.clicks == []


@pytest.mark.asyncio
async def test_landscape_read_retries_while_rotating():
    landscape_rotate = rotate_button()
    ocr = FakeOcr([block("10:00", 80, 900), block("11:00", 280, 900), block("45g", 180, 300)])
    host = FakeHost(None, node(children=[landscape_rotate]))

    treatments = await make_reader(host, ocr).explore_graph(main_screen(with_rotate=True), NOW)

    assert [t.carbs_grams for t in treatments] == [45.0]
    assert host.clicks[-1] is landscape_rotate


@pytest.mark.asyncio
async def test_landscape_that_never_appears_presses_back():
    ocr = FakeOcr([])
    host = FakeHost()

    assert await make_reader(host, ocr).explore_graph(main_screen(with_rotate=True), NOW) == []
    assert ocr.images == []
    assert host.backs == 1
