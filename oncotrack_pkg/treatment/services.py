# oncotrack_pkg/treatment/services.py
import datetime
from flask import current_app
from .. import db
from ..models import TreatmentPlan, TreatmentDrug, TreatmentCycle
from ..exceptions import InputValidationError, ResourceNotFoundError
from ..utils import parse_iso_date
from .calculator import DOSE_UNITS, compute_body_surface_area, compute_dose, generate_cycle_schedule

LAB_FIELDS = ('anc_value', 'plt_value', 'scr_value', 'ast_value', 'alt_value', 'bilirubin_value')
THRESHOLD_FIELDS = ('anc_min', 'plt_min', 'scr_max', 'ast_alt_max_xuln')
RELEASE_STATUSES = ('released', 'delayed', 'dose_adjusted', 'cancelled')
# Optional free-text plan fields and their column lengths.
OPTIONAL_TEXT_FIELDS = {'line_of_therapy': 100, 'treatment_intent': 100, 'diagnosis_cid': 20, 'status': 50}
# Fields whose change would alter the schedule; cycles are not regenerated for them.
SCHEDULE_FIELDS = ('planned_cycles', 'periodicity_days', 'start_date')
MAX_PLANNED_CYCLES = 100
MAX_PERIODICITY_DAYS = 365


# --- Validation helpers ---

def _is_number(value):
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _require_text(data, field):
    value = data.get(field)
    if not isinstance(value, str) or not value.strip():
        raise InputValidationError(f"'{field}' is required.", field=field)
    return value.strip()


def _optional_text(data, field, max_len=None):
    value = data.get(field)
    if value is None:
        return None
    if not isinstance(value, str):
        raise InputValidationError(f"'{field}' must be a string.", field=field)
    if max_len is not None and len(value) > max_len:
        raise InputValidationError(f"'{field}' must be at most {max_len} characters.", field=field)
    return value


def _require_positive_int(data, field, maximum=None):
    value = data.get(field)
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise InputValidationError(f"'{field}' must be a positive integer.", field=field)
    if maximum is not None and value > maximum:
        raise InputValidationError(f"'{field}' must be at most {maximum}.", field=field)
    return value


def _optional_positive_int(data, field):
    if data.get(field) is None:
        return None
    return _require_positive_int(data, field)


def _optional_positive_number(data, field):
    value = data.get(field)
    if value is None:
        return None
    if not _is_number(value) or value <= 0:
        raise InputValidationError(f"'{field}' must be a positive number.", field=field)
    return float(value)


def _optional_number(data, field):
    value = data.get(field)
    if value is None:
        return None
    if not _is_number(value):
        raise InputValidationError(f"'{field}' must be numeric.", field=field)
    return float(value)


def _require_date(data, field):
    value = parse_iso_date(data.get(field))
    if value is None:
        raise InputValidationError(f"'{field}' must be an ISO date (YYYY-MM-DD).", field=field)
    return value


def _validate_drug(raw, index):
    if not isinstance(raw, dict):
        raise InputValidationError(f"drugs[{index}] must be an object.", field="drugs")

    dose_unit = raw.get('dose_unit')
    if dose_unit not in DOSE_UNITS:
        raise InputValidationError(
            f"drugs[{index}].dose_unit must be one of: {', '.join(DOSE_UNITS)}.", field="dose_unit"
        )

    reference_dose = raw.get('reference_dose')
    if not _is_number(reference_dose) or reference_dose <= 0:
        raise InputValidationError(f"drugs[{index}].reference_dose must be a positive number.", field="reference_dose")

    day_codes = raw.get('day_codes')
    if not isinstance(day_codes, list) or not all(isinstance(code, str) and code for code in day_codes):
        raise InputValidationError(f"drugs[{index}].day_codes must be a list of day labels.", field="day_codes")

    sequence_order = raw.get('sequence_order')
    if sequence_order is not None and (isinstance(sequence_order, bool) or not isinstance(sequence_order, int)):
        raise InputValidationError(f"drugs[{index}].sequence_order must be an integer.", field="sequence_order")

    return {
        "drug_name": _require_text(raw, 'drug_name'),
        "reference_dose": float(reference_dose),
        "dose_unit": dose_unit,
        "route": _require_text(raw, 'route'),
        "day_codes": list(day_codes),
        "sequence_order": sequence_order if sequence_order is not None else index + 1,
        "diluent": _optional_text(raw, 'diluent', 100),
        "volume_ml": _optional_positive_number(raw, 'volume_ml'),
        "infusion_time_min": _optional_positive_int(raw, 'infusion_time_min'),
    }


def _bsa_or_none(weight_kg, height_cm):
    if weight_kg and height_cm:
        return compute_body_surface_area(weight_kg, height_cm)
    return None


# --- Plan services ---

def create_treatment_plan(patient_id, plan_data, drugs_data, prescriber_id=None):
    """
    Validates and persists a plan with its drugs and the full cycle schedule
    in a single transaction. Nothing is written if validation fails.
    """
    if not isinstance(drugs_data, list):
        raise InputValidationError("'drugs' must be a list.", field="drugs")

    regimen_name = _require_text(plan_data, 'regimen_name')
    planned_cycles = _require_positive_int(plan_data, 'planned_cycles', MAX_PLANNED_CYCLES)
    periodicity_days = _require_positive_int(plan_data, 'periodicity_days', MAX_PERIODICITY_DAYS)
    start_date = _require_date(plan_data, 'start_date')
    weight_kg = _optional_positive_number(plan_data, 'weight_kg')
    height_cm = _optional_positive_number(plan_data, 'height_cm')
    texts = {field: _optional_text(plan_data, field, max_len) for field, max_len in OPTIONAL_TEXT_FIELDS.items()}
    texts = {field: value for field, value in texts.items() if value is not None}
    thresholds = {field: _optional_number(plan_data, field) for field in THRESHOLD_FIELDS}
    drugs = [_validate_drug(raw, i) for i, raw in enumerate(drugs_data)]

    schedule = generate_cycle_schedule(start_date, planned_cycles, periodicity_days)
    if len(schedule) != planned_cycles:
        raise InputValidationError("The cycle schedule does not fit in the calendar.", field="periodicity_days")

    plan = TreatmentPlan(
        user_id=patient_id,
        prescriber_id=prescriber_id,
        regimen_name=regimen_name,
        planned_cycles=planned_cycles,
        periodicity_days=periodicity_days,
        start_date=start_date,
        weight_kg=weight_kg,
        height_cm=height_cm,
        bsa_m2=_bsa_or_none(weight_kg, height_cm),
        **texts,
        **thresholds
    )
    plan.drugs = [TreatmentDrug(**drug) for drug in drugs]
    plan.cycles = [
        TreatmentCycle(cycle_number=i + 1, scheduled_date=scheduled, status='scheduled', release_status='pending')
        for i, scheduled in enumerate(schedule)
    ]

    try:
        db.session.add(plan)
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.error(f"[Treatment] Failed to create plan '{regimen_name}' for patient {patient_id}")
        raise

    current_app.logger.info(
        f"[Treatment] Plan {plan.id} created for patient {patient_id}: "
        f"{planned_cycles} cycles every {periodicity_days} days, BSA {plan.bsa_m2}"
    )
    return plan


def get_plan_or_404(plan_id):
    plan = db.session.get(TreatmentPlan, plan_id)
    if not plan:
        raise ResourceNotFoundError("Treatment plan not found.", resource="treatment_plan")
    return plan


def get_cycle_or_404(cycle_id):
    cycle = db.session.get(TreatmentCycle, cycle_id)
    if not cycle:
        raise ResourceNotFoundError("Treatment cycle not found.", resource="treatment_cycle")
    return cycle


def list_patient_plans(patient_id):
    return TreatmentPlan.query.filter_by(user_id=patient_id) \
        .order_by(TreatmentPlan.created_at.desc()).all()


def plan_with_doses(plan):
    """Serializes a plan, adding each drug's absolute dose for the plan's BSA/weight."""
    data = plan.to_dict()
    for drug in data["drugs"]:
        drug["calculated_dose"] = round(
            compute_dose(drug["reference_dose"], drug["dose_unit"], plan.bsa_m2, plan.weight_kg), 2
        )
    return data


def update_treatment_plan(plan, data):
    """
    Updates plan fields. BSA follows weight/height; the cycle schedule is a
    snapshot taken at creation and is left as is.
    """
    if 'regimen_name' in data:
        plan.regimen_name = _require_text(data, 'regimen_name')
    if 'planned_cycles' in data:
        plan.planned_cycles = _require_positive_int(data, 'planned_cycles', MAX_PLANNED_CYCLES)
    if 'periodicity_days' in data:
        plan.periodicity_days = _require_positive_int(data, 'periodicity_days', MAX_PERIODICITY_DAYS)
    if 'start_date' in data:
        plan.start_date = _require_date(data, 'start_date')
    if 'end_date' in data:
        plan.end_date = _require_date(data, 'end_date') if data.get('end_date') else None
    for field, max_len in OPTIONAL_TEXT_FIELDS.items():
        if field in data:
            setattr(plan, field, _optional_text(data, field, max_len))
    for field in THRESHOLD_FIELDS:
        if field in data:
            setattr(plan, field, _optional_number(data, field))

    if 'weight_kg' in data or 'height_cm' in data:
        if 'weight_kg' in data:
            plan.weight_kg = _optional_positive_number(data, 'weight_kg')
        if 'height_cm' in data:
            plan.height_cm = _optional_positive_number(data, 'height_cm')
        plan.bsa_m2 = _bsa_or_none(plan.weight_kg, plan.height_cm)

    if any(field in data for field in SCHEDULE_FIELDS):
        current_app.logger.info(f"[Treatment] Plan {plan.id} schedule fields edited; existing cycles kept.")

    db.session.commit()
    return plan


def delete_treatment_plan(plan):
    plan_id = plan.id
    db.session.delete(plan) # Drugs and cycles go with it (cascade)
    db.session.commit()
    current_app.logger.info(f"[Treatment] Plan {plan_id} deleted.")


# --- Cycle services ---

def update_cycle_labs(cycle, data):
    lab_values = {field: _optional_number(data, field) for field in LAB_FIELDS if field in data}
    if not lab_values:
        raise InputValidationError(f"Provide at least one of: {', '.join(LAB_FIELDS)}.")
    for field, value in lab_values.items():
        setattr(cycle, field, value)
    db.session.commit()
    return cycle


def release_cycle(cycle, decided_by, data):
    status = data.get('release_status')
    if status not in RELEASE_STATUSES:
        raise InputValidationError(
            f"release_status must be one of: {', '.join(RELEASE_STATUSES)}.", field="release_status"
        )
    delay_reason = _optional_text(data, 'delay_reason')
    dose_adjustments = data.get('dose_adjustments')
    if dose_adjustments is not None and not isinstance(dose_adjustments, (dict, list)):
        raise InputValidationError("dose_adjustments must be an object or a list.", field="dose_adjustments")

    cycle.release_status = status
    cycle.release_decision_by = decided_by.id
    cycle.release_decision_at = datetime.datetime.utcnow()
    cycle.delay_reason = delay_reason
    cycle.dose_adjustments = dose_adjustments
    db.session.commit()
    current_app.logger.info(f"[Treatment] Cycle {cycle.id} marked '{status}' by {decided_by.id}.")
    return cycle
