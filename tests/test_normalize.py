import pytest

from oncotrack_pkg.connections.normalize import (
    normalize_vaccination_payload, normalize_vaccine, normalize_alert, synthetic_id, extract_result_list
)

VACCINES = [
    {"id": "v1", "name": "Influenza", "date": "2024-04-10", "dose": "Annual", "status": "up_to_date"},
    {"vaccine_name": "Hepatitis B", "application_date": "2023-02-01", "dose_number": 2, "status": "pending"},
    {"vaccine": "Pneumococcal 20", "applied_at": "2022-09-15", "status": "overdue"},
]


@pytest.mark.parametrize("list_key", ["vaccines", "vaccinations", "data"])
def test_result_list_under_any_known_key(list_key):
    result = normalize_vaccination_payload({list_key: VACCINES})
    assert result["summary"]["total_vaccines"] == 3
    assert [v["name"] for v in result["vaccines"]] == ["Influenza", "Hepatitis B", "Pneumococcal 20"]


def test_missing_list_and_counters_default_to_zero():
    result = normalize_vaccination_payload({})
    summary = result["summary"]
    assert result["vaccines"] == []
    assert (summary["total_vaccines"], summary["up_to_date"], summary["pending"], summary["overdue"]) == (0, 0, 0, 0)
    assert summary["clinical_alerts"] == []
    assert summary["last_updated"]


def test_counters_derived_from_item_statuses():
    summary = normalize_vaccination_payload({"vaccines": VACCINES})["summary"]
    assert (summary["up_to_date"], summary["pending"], summary["overdue"]) == (1, 1, 1)


def test_explicit_partner_counters_win():
    summary = normalize_vaccination_payload({
        "vaccines": VACCINES,
        "total_vaccines": 10,
        "up_to_date": 7,
        "pending": 2,
        "overdue": 1,
        "last_updated": "2024-05-01T12:00:00Z",
    })["summary"]
    assert summary["total_vaccines"] == 10
    assert summary["up_to_date"] == 7
    assert summary["last_updated"] == "2024-05-01T12:00:00Z"


def test_first_list_key_holding_a_list_wins():
    assert extract_result_list({"vaccines": None, "data": [{"name": "BCG"}]}) == [{"name": "BCG"}]


def test_field_name_variants():
    vaccine = normalize_vaccine(VACCINES[1])
    assert vaccine["date"] == "2023-02-01"
    assert vaccine["dose"] == "2"
    assert vaccine["source"] == "minha_caderneta"


def test_unknown_status_is_marked_unknown():
    assert normalize_vaccine({"name": "BCG", "status": "maybe"})["status"] == "unknown"


class TestSyntheticId:

    def test_partner_id_is_kept(self):
        assert normalize_vaccine(VACCINES[0])["id"] == "v1"

    def test_deterministic_when_partner_omits_id(self):
        first = normalize_vaccine(VACCINES[2])["id"]
        second = normalize_vaccine(dict(VACCINES[2]))["id"]
        assert first == second
        assert first == "vac-pneumococcal-20-2022-09-15"

    def test_same_fields_collide(self):
        a = {"name": "Tetanus", "date": "2020-01-01", "dose": "Booster", "observations": "left arm"}
        b = {"name": "TETANUS", "date": "2020-01-01", "dose": "booster"}
        assert normalize_vaccine(a)["id"] == normalize_vaccine(b)["id"]

    def test_empty_parts(self):
        assert synthetic_id(None, None, None) == "vac"


class TestAlerts:

    @pytest.mark.parametrize("raw,expected", [
        ({"severity": "critical"}, "critical"),
        ({"type": "warning"}, "warning"),
        ({"level": "info"}, "info"),
        ({"severity": "urgent"}, "info"),
        ({}, "info"),
    ])
    def test_severity_is_restricted(self, raw, expected):
        assert normalize_alert({"message": "Check", **raw})["severity"] == expected

    def test_alert_shape(self):
        alert = normalize_alert({"message": "Influenza due", "created_at": "2024-05-01", "source": "oncotrack"})
        assert set(alert) == {"id", "source", "severity", "message", "created_at"}
        assert alert["source"] == "oncotrack"
        assert alert["id"].startswith("alert-")

    def test_alerts_in_summary(self):
        summary = normalize_vaccination_payload({
            "vaccines": [],
            "clinical_alerts": [{"id": 9, "message": "Avoid live vaccines during chemotherapy", "severity": "critical"}, "bad"],
        })["summary"]
        assert len(summary["clinical_alerts"]) == 1
        assert summary["clinical_alerts"][0]["id"] == "9"
