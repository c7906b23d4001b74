# oncotrack_pkg/access/routes.py
from flask import Blueprint, jsonify, g
from ..utils import permission_required, get_json_body
from .services import grant_doctor_access, revoke_doctor_access, list_active_doctors

access_bp = Blueprint('access_bp', __name__)


@access_bp.route('/doctors', methods=['GET'])
@permission_required('access:manage')
def get_my_doctors():
    grants = list_active_doctors(g.current_user)
    return jsonify({"success": True, "doctors": [a.to_dict() for a in grants]}), 200


@access_bp.route('/doctors', methods=['POST'])
@permission_required('access:manage')
def grant_access():
    data = get_json_body()
    access = grant_doctor_access(g.current_user, data.get('doctor_id'))
    return jsonify({"success": True, "access": access.to_dict()}), 201


@access_bp.route('/doctors/<string:doctor_id>', methods=['DELETE'])
@permission_required('access:manage')
def revoke_access(doctor_id):
    access = revoke_doctor_access(g.current_user, doctor_id)
    return jsonify({"success": True, "access": access.to_dict()}), 200
