import pytest

from screenreader.services.detail_dialog import extract_detail_fields, parse_detail_texts

from screens import dialog, main_screen

GERMAN_DIALOG = [
    "Aktives Insulin: 1,5 IE",
    "Insulinabgaberate: 0,8 IE/h",
    "Reservoir: 120 IE",
    "Pumpenbatterie: 80 %",
    "Glukosezielwert: 105 mg/dL",
    "Bolus: 2,5 IE vor 12 Minuten",
    "Pumpenverbindung: vor 3 Minuten",
    "Sensordaten: vor einer Minute",
    "Insulin heute: 25,4 IE",
    "Insulin gestern: 31,0 IE",
]


def test_parses_full_german_dialog():
    data = parse_detail_texts(GERMAN_DIALOG)
    assert data == {
        "active_insulin": 1.5,
        "basal_rate": 0.8,
        "reservoir": 120.0,
        "pump_battery": 80.0,
        "glucose_target": 105.0,
        "bolus_amount": 2.5,
        "bolus_minutes_ago": 12.0,
        "pump_connection_minutes_ago": 3.0,
        "sensor_data_minutes_ago": 1.0,
        "insulin_today": 25.4,
        "insulin_yesterday": 31.0,
    }


def test_parses_english_dialog():
    data = parse_detail_texts(
        [
            "Active Insulin: 0.75 U",
            "Insulin delivery rate: 1.05 U/h",
            "Pump battery: 45 %",
            "Bolus: 3.0 U 45 minutes ago",
            "Sensor data: 4 minutes ago",
        ]
    )
    assert data["active_insulin"] == 0.75
    assert data["basal_rate"] == 1.05
    assert data["pump_battery"] == 45.0
    assert data["bolus_amount"] == 3.0
    assert data["bolus_minutes_ago"] == 45.0
    assert data["sensor_data_minutes_ago"] == 4.0
    assert "reservoir" not in data


def test_parses_french_bolus_and_ages():
    data = parse_detail_texts(
        [
            "Insuline active: 2,1 UI",
            "Bolus: 4,0 UI il y a 7 minutes",
            "Connexion pompe: il y a 2 minutes",
        ]
    )
    assert data["active_insulin"] == 2.1
    assert data["bolus_amount"] == 4.0
    assert data["bolus_minutes_ago"] == 7.0
    assert data["pump_connection_minutes_ago"] == 2.0


def test_compact_bolus_age_is_hours_and_minutes():
    data = parse_detail_texts(["Bolus: 1,2 IE 1h 05min"])
    assert data["bolus_amount"] == 1.2
    assert data["bolus_minutes_ago"] == 65.0


def test_bolus_placeholder_means_no_bolus():
    data = parse_detail_texts(["Bolus: ---", "Reservoir: 80 IE"])
    assert "bolus_amount" not in data
    assert "bolus_minutes_ago" not in data
    assert data["reservoir"] == 80.0


def test_first_occurrence_wins():
    data = parse_detail_texts(["Reservoir: 120 IE", "Reservoir: 90 IE"])
    assert data["reservoir"] == 120.0


@pytest.mark.parametrize("text", ["Reservoir 120 IE", "Reservoir: voll", "Pumpenbatterie: hoch"])
def test_unmatched_lines_are_skipped(text):
    assert parse_detail_texts([text]) == {}


def test_extract_from_dialog_tree():
    data = extract_detail_fields(dialog("Aktives Insulin: 1,5 IE", "Reservoir: 120 IE"))
    assert data == {"active_insulin": 1.5, "reservoir": 120.0}


def test_main_screen_is_not_a_dialog():
    assert extract_detail_fields(main_screen()) == {}


def test_empty_tree():
    assert extract_detail_fields(None) == {}
