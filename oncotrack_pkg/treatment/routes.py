# oncotrack_pkg/treatment/routes.py
from flask import Blueprint, jsonify, g
from ..utils import permission_required, login_required, get_json_body
from ..access.services import require_patient_access
from .calculator import compute_body_surface_area, compute_dose
from .services import (
    create_treatment_plan, list_patient_plans, plan_with_doses, update_treatment_plan,
    delete_treatment_plan, update_cycle_labs, release_cycle, get_plan_or_404, get_cycle_or_404
)

treatment_bp = Blueprint('treatment_bp', __name__)


@treatment_bp.route('/treatment/dose-preview', methods=['POST'])
@login_required
def dose_preview():
    """
    Calculator preview for plan forms. Never rejects numeric input: missing or
    invalid values come back as 0.
    """
    data = get_json_body()
    weight_kg = data.get('weight_kg')
    bsa = compute_body_surface_area(weight_kg, data.get('height_cm'))
    drugs = data.get('drugs') if isinstance(data.get('drugs'), list) else []

    preview = []
    for drug in drugs:
        if not isinstance(drug, dict):
            continue
        preview.append({
            **drug,
            "calculated_dose": round(compute_dose(drug.get('reference_dose'), drug.get('dose_unit'), bsa, weight_kg), 2)
        })
    return jsonify({"success": True, "bsa_m2": bsa, "drugs": preview}), 200


@treatment_bp.route('/patients/<string:patient_id>/treatment-plans', methods=['POST'])
@permission_required('treatment:write')
def create_plan(patient_id):
    grant = require_patient_access(g.current_user, patient_id)
    data = get_json_body()
    if not data:
        return jsonify({"success": False, "error": "Request body must be JSON."}), 400

    plan_data = {k: v for k, v in data.items() if k != 'drugs'}
    plan = create_treatment_plan(
        patient_id=patient_id,
        plan_data=plan_data,
        drugs_data=data.get('drugs', []),
        prescriber_id=g.current_user.id if grant.via_doctor else None
    )
    return jsonify({"success": True, "plan": plan_with_doses(plan)}), 201


@treatment_bp.route('/patients/<string:patient_id>/treatment-plans', methods=['GET'])
@permission_required('treatment:read')
def get_plans(patient_id):
    require_patient_access(g.current_user, patient_id)
    plans = list_patient_plans(patient_id)
    return jsonify({"success": True, "plans": [plan_with_doses(p) for p in plans]}), 200


@treatment_bp.route('/treatment-plans/<string:plan_id>', methods=['GET'])
@permission_required('treatment:read')
def get_plan(plan_id):
    plan = get_plan_or_404(plan_id)
    require_patient_access(g.current_user, plan.user_id)
    return jsonify({"success": True, "plan": plan_with_doses(plan)}), 200


@treatment_bp.route('/treatment-plans/<string:plan_id>', methods=['PUT'])
@permission_required('treatment:write')
def update_plan(plan_id):
    plan = get_plan_or_404(plan_id)
    require_patient_access(g.current_user, plan.user_id)
    data = get_json_body()
    if not data:
        return jsonify({"success": False, "error": "No update data provided."}), 400
    plan = update_treatment_plan(plan, data)
    return jsonify({"success": True, "plan": plan_with_doses(plan)}), 200


@treatment_bp.route('/treatment-plans/<string:plan_id>', methods=['DELETE'])
@permission_required('treatment:write')
def delete_plan(plan_id):
    plan = get_plan_or_404(plan_id)
    require_patient_access(g.current_user, plan.user_id)
    delete_treatment_plan(plan)
    return jsonify({"success": True}), 200


@treatment_bp.route('/treatment-cycles/<string:cycle_id>/labs', methods=['PUT'])
@permission_required('treatment:write')
def update_labs(cycle_id):
    cycle = get_cycle_or_404(cycle_id)
    require_patient_access(g.current_user, cycle.plan.user_id)
    cycle = update_cycle_labs(cycle, get_json_body())
    return jsonify({"success": True, "cycle": cycle.to_dict()}), 200


@treatment_bp.route('/treatment-cycles/<string:cycle_id>/release', methods=['POST'])
@permission_required('treatment:release')
def release(cycle_id):
    cycle = get_cycle_or_404(cycle_id)
    require_patient_access(g.current_user, cycle.plan.user_id)
    cycle = release_cycle(cycle, g.current_user, get_json_body())
    return jsonify({"success": True, "cycle": cycle.to_dict()}), 200
