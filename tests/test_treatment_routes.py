import pytest

from oncotrack_pkg import db
from oncotrack_pkg.models import TreatmentPlan, AuditLog

PLAN = {
    "regimen_name": "AC-T",
    "line_of_therapy": "1st line",
    "treatment_intent": "adjuvant",
    "planned_cycles": 4,
    "periodicity_days": 21,
    "start_date": "2024-01-01",
    "weight_kg": 70,
    "height_cm": 170,
    "anc_min": 1500,
    "plt_min": 100000,
    "drugs": [
        {"drug_name": "Doxorubicin", "reference_dose": 60, "dose_unit": "mg/m2", "route": "IV", "day_codes": ["D1"]},
        {"drug_name": "Cyclophosphamide", "reference_dose": 600, "dose_unit": "mg/m2", "route": "IV", "day_codes": ["D1"]},
        {"drug_name": "Ondansetron", "reference_dose": 8, "dose_unit": "mg", "route": "PO", "day_codes": ["D1", "D2", "D3"]},
    ],
}


def create_plan(client, patient_id, headers, **overrides):
    return client.post(f'/api/patients/{patient_id}/treatment-plans', json={**PLAN, **overrides}, headers=headers)


def test_create_plan_computes_bsa_doses_and_schedule(client, patient):
    user, headers = patient
    response = create_plan(client, user["id"], headers)
    assert response.status_code == 201
    plan = response.get_json()["plan"]

    assert plan["bsa_m2"] == pytest.approx(1.81)
    assert [d["calculated_dose"] for d in plan["drugs"]] == [pytest.approx(108.6), pytest.approx(1086.0), 8]
    assert [c["scheduled_date"] for c in plan["cycles"]] == ["2024-01-01", "2024-01-22", "2024-02-12", "2024-03-04"]
    assert [c["cycle_number"] for c in plan["cycles"]] == [1, 2, 3, 4]
    assert all(c["release_status"] == "pending" for c in plan["cycles"])
    assert plan["prescriber_id"] is None


def test_plan_creation_is_audited(app, client, patient):
    user, headers = patient
    create_plan(client, user["id"], headers)
    with app.app_context():
        assert AuditLog.query.filter_by(action="TREATMENT_PLAN_CREATE").count() == 1


def test_plan_without_anthropometrics_has_no_bsa(client, patient):
    user, headers = patient
    response = create_plan(client, user["id"], headers, weight_kg=None, height_cm=None)
    assert response.status_code == 201
    plan = response.get_json()["plan"]
    assert plan["bsa_m2"] is None
    assert plan["drugs"][0]["calculated_dose"] == 0


@pytest.mark.parametrize("overrides,field", [
    ({"regimen_name": ""}, "regimen_name"),
    ({"planned_cycles": 0}, "planned_cycles"),
    ({"periodicity_days": "21"}, "periodicity_days"),
    ({"start_date": "01/01/2024"}, "start_date"),
    ({"weight_kg": -3}, "weight_kg"),
    ({"drugs": [{"drug_name": "X", "reference_dose": 10, "dose_unit": "AUC", "route": "IV", "day_codes": ["D1"]}]}, "dose_unit"),
    ({"drugs": [{"drug_name": "X", "reference_dose": 10, "dose_unit": "mg", "route": "IV", "day_codes": "D1"}]}, "day_codes"),
    ({"planned_cycles": 10 ** 7}, "planned_cycles"),
    ({"periodicity_days": 1_000_000}, "periodicity_days"),
    ({"start_date": "9999-12-01"}, "periodicity_days"),
    ({"line_of_therapy": {"line": 1}}, "line_of_therapy"),
    ({"treatment_intent": 2}, "treatment_intent"),
    ({"diagnosis_cid": "C50.9" * 10}, "diagnosis_cid"),
    ({"status": ["active"]}, "status"),
    ({"drugs": [{**PLAN["drugs"][0], "diluent": ["NaCl 0.9%"]}]}, "diluent"),
    ({"drugs": [{**PLAN["drugs"][0], "infusion_time_min": "30"}]}, "infusion_time_min"),
    ({"drugs": [{**PLAN["drugs"][0], "infusion_time_min": 0}]}, "infusion_time_min"),
])
def test_invalid_plan_is_rejected_without_writes(app, client, patient, overrides, field):
    user, headers = patient
    response = create_plan(client, user["id"], headers, **overrides)
    assert response.status_code == 400
    body = response.get_json()
    assert body["success"] is False
    assert body["code"] == "VALIDATION_ERROR"
    assert body["details"]["field"] == field
    with app.app_context():
        assert TreatmentPlan.query.count() == 0


def test_requires_authentication(client, patient):
    user, _ = patient
    response = client.get(f'/api/patients/{user["id"]}/treatment-plans')
    assert response.status_code == 401


def test_patient_cannot_read_another_patients_plans(client, patient, other_patient):
    user, headers = patient
    create_plan(client, user["id"], headers)
    _, other_headers = other_patient
    response = client.get(f'/api/patients/{user["id"]}/treatment-plans', headers=other_headers)
    assert response.status_code == 403


def test_doctor_needs_an_active_grant(client, patient, doctor):
    user, headers = patient
    doctor_user, doctor_headers = doctor
    create_plan(client, user["id"], headers)

    response = client.get(f'/api/patients/{user["id"]}/treatment-plans', headers=doctor_headers)
    assert response.status_code == 403

    client.post('/api/access/doctors', json={"doctor_id": doctor_user["id"]}, headers=headers)
    response = client.get(f'/api/patients/{user["id"]}/treatment-plans', headers=doctor_headers)
    assert response.status_code == 200
    assert len(response.get_json()["plans"]) == 1

    client.delete(f'/api/access/doctors/{doctor_user["id"]}', headers=headers)
    response = client.get(f'/api/patients/{user["id"]}/treatment-plans', headers=doctor_headers)
    assert response.status_code == 403


def test_doctor_prescribes_for_linked_patient(client, patient, linked_doctor):
    user, _ = patient
    doctor_user, doctor_headers = linked_doctor
    response = create_plan(client, user["id"], doctor_headers)
    assert response.status_code == 201
    assert response.get_json()["plan"]["prescriber_id"] == doctor_user["id"]


def test_update_recomputes_bsa_and_keeps_cycles(client, patient):
    user, headers = patient
    plan = create_plan(client, user["id"], headers).get_json()["plan"]

    response = client.put(f'/api/treatment-plans/{plan["id"]}', json={
        "weight_kg": 80, "planned_cycles": 6, "start_date": "2024-02-01"
    }, headers=headers)
    assert response.status_code == 200
    updated = response.get_json()["plan"]
    assert updated["bsa_m2"] > plan["bsa_m2"]
    assert updated["planned_cycles"] == 6
    assert [c["id"] for c in updated["cycles"]] == [c["id"] for c in plan["cycles"]]
    assert updated["cycles"][0]["scheduled_date"] == "2024-01-01"


def test_delete_plan_removes_children(app, client, patient):
    user, headers = patient
    plan = create_plan(client, user["id"], headers).get_json()["plan"]
    assert client.delete(f'/api/treatment-plans/{plan["id"]}', headers=headers).status_code == 200
    assert client.get(f'/api/treatment-plans/{plan["id"]}', headers=headers).status_code == 404


def test_missing_plan_is_404(client, patient):
    _, headers = patient
    response = client.get('/api/treatment-plans/does-not-exist', headers=headers)
    assert response.status_code == 404
    assert response.get_json()["code"] == "NOT_FOUND"


def test_record_cycle_labs(client, patient):
    user, headers = patient
    cycle = create_plan(client, user["id"], headers).get_json()["plan"]["cycles"][0]
    response = client.put(f'/api/treatment-cycles/{cycle["id"]}/labs', json={"anc_value": 1800, "plt_value": 150000},
                          headers=headers)
    assert response.status_code == 200
    assert response.get_json()["cycle"]["anc_value"] == 1800

    response = client.put(f'/api/treatment-cycles/{cycle["id"]}/labs', json={}, headers=headers)
    assert response.status_code == 400


def test_only_doctors_release_cycles(app, client, patient, linked_doctor):
    user, headers = patient
    doctor_user, doctor_headers = linked_doctor
    cycle = create_plan(client, user["id"], headers).get_json()["plan"]["cycles"][0]

    response = client.post(f'/api/treatment-cycles/{cycle["id"]}/release', json={"release_status": "released"},
                           headers=headers)
    assert response.status_code == 403

    response = client.post(f'/api/treatment-cycles/{cycle["id"]}/release', json={
        "release_status": "delayed", "delay_reason": "ANC below threshold"
    }, headers=doctor_headers)
    assert response.status_code == 200
    released = response.get_json()["cycle"]
    assert released["release_status"] == "delayed"
    assert released["release_decision_by"] == doctor_user["id"]

    with app.app_context():
        assert AuditLog.query.filter_by(action="CYCLE_RELEASE_DECISION").count() == 1


def test_release_rejects_unknown_status(client, patient, linked_doctor):
    user, headers = patient
    _, doctor_headers = linked_doctor
    cycle = create_plan(client, user["id"], headers).get_json()["plan"]["cycles"][0]
    response = client.post(f'/api/treatment-cycles/{cycle["id"]}/release', json={"release_status": "approved"},
                           headers=doctor_headers)
    assert response.status_code == 400


def test_dose_preview_never_rejects_numbers(client, patient):
    _, headers = patient
    response = client.post('/api/treatment/dose-preview', json={
        "weight_kg": "heavy", "height_cm": 170,
        "drugs": [{"drug_name": "Paclitaxel", "reference_dose": 175, "dose_unit": "mg/m2"}],
    }, headers=headers)
    assert response.status_code == 200
    body = response.get_json()
    assert body["bsa_m2"] == 0
    assert body["drugs"][0]["calculated_dose"] == 0


def test_optional_drug_fields_are_stored(client, patient):
    user, headers = patient
    drug = {**PLAN["drugs"][0], "diluent": "NaCl 0.9% 250 mL", "infusion_time_min": 30}
    response = create_plan(client, user["id"], headers, drugs=[drug])
    assert response.status_code == 201
    stored = response.get_json()["plan"]["drugs"][0]
    assert stored["diluent"] == "NaCl 0.9% 250 mL"
    assert stored["infusion_time_min"] == 30


def test_every_planned_cycle_is_scheduled_up_to_the_limit(client, patient):
    user, headers = patient
    response = create_plan(client, user["id"], headers, planned_cycles=100, periodicity_days=365)
    assert response.status_code == 201
    assert len(response.get_json()["plan"]["cycles"]) == 100


@pytest.mark.parametrize("update,field", [
    ({"end_date": "not-a-date"}, "end_date"),
    ({"line_of_therapy": {"line": 2}}, "line_of_therapy"),
    ({"periodicity_days": 1_000_000}, "periodicity_days"),
])
def test_invalid_update_is_rejected(client, patient, update, field):
    user, headers = patient
    plan = create_plan(client, user["id"], headers).get_json()["plan"]

    response = client.put(f'/api/treatment-plans/{plan["id"]}', json=update, headers=headers)
    assert response.status_code == 400
    assert response.get_json()["details"]["field"] == field

    stored = client.get(f'/api/treatment-plans/{plan["id"]}', headers=headers).get_json()["plan"]
    assert stored["line_of_therapy"] == PLAN["line_of_therapy"]
    assert stored["periodicity_days"] == PLAN["periodicity_days"]


def test_update_sets_and_clears_end_date(client, patient):
    user, headers = patient
    plan = create_plan(client, user["id"], headers).get_json()["plan"]

    response = client.put(f'/api/treatment-plans/{plan["id"]}', json={"end_date": "2024-06-30"}, headers=headers)
    assert response.get_json()["plan"]["end_date"] == "2024-06-30"

    response = client.put(f'/api/treatment-plans/{plan["id"]}', json={"end_date": None}, headers=headers)
    assert response.get_json()["plan"]["end_date"] is None


def test_release_rejects_non_text_delay_reason(client, patient, linked_doctor):
    user, headers = patient
    _, doctor_headers = linked_doctor
    cycle = create_plan(client, user["id"], headers).get_json()["plan"]["cycles"][0]
    response = client.post(f'/api/treatment-cycles/{cycle["id"]}/release', json={
        "release_status": "delayed", "delay_reason": {"anc": 900}
    }, headers=doctor_headers)
    assert response.status_code == 400
    assert response.get_json()["details"]["field"] == "delay_reason"

    stored = client.get(f'/api/treatment-plans/{cycle["treatment_plan_id"]}', headers=headers).get_json()
    assert stored["plan"]["cycles"][0]["release_status"] == "pending"
