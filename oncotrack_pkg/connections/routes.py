# oncotrack_pkg/connections/routes.py
from flask import Blueprint, jsonify, g
from ..utils import permission_required, get_json_body
from ..access.services import require_patient_access
from .services import (
    initiate_connection, complete_connection, get_active_connection, sync_vaccination,
    disconnect, create_vaccine
)
from .store import ConnectionStore

connections_bp = Blueprint('connections_bp', __name__)
patient_vaccination_bp = Blueprint('patient_vaccination_bp', __name__)


@connections_bp.route('/status', methods=['GET'])
@permission_required('connection:manage')
def connection_status():
    connection = get_active_connection(g.current_user)
    return jsonify({
        "success": True,
        "connected": connection is not None,
        "connection": connection.to_dict(include_token=True) if connection else None
    }), 200


@connections_bp.route('/initiate', methods=['POST'])
@permission_required('connection:manage')
def initiate():
    return jsonify({"success": True, **initiate_connection(g.current_user)}), 200


@connections_bp.route('/complete', methods=['POST'])
@permission_required('connection:manage')
def complete():
    data = get_json_body()
    connection = complete_connection(
        g.current_user,
        target_user_id=data.get('user_id'),
        correlation_token=data.get('correlation_token')
    )
    return jsonify({"success": True, "connection": connection.to_dict()}), 200


@connections_bp.route('/vaccination', methods=['GET'])
@permission_required('vaccination:read')
def my_vaccination():
    result = sync_vaccination(ConnectionStore.for_user(g.current_user))
    return jsonify({"success": True, **result}), 200


@connections_bp.route('/disconnect', methods=['POST'])
@permission_required('connection:manage')
def disconnect_route():
    data = get_json_body()
    connection, partner_notified = disconnect(g.current_user, data.get('connection_token'))
    return jsonify({
        "success": True,
        "connection": connection.to_dict(),
        "partner_notified": partner_notified
    }), 200


@connections_bp.route('/vaccines', methods=['POST'])
@permission_required('connection:manage')
def create_vaccine_route():
    vaccine = create_vaccine(g.current_user, get_json_body())
    return jsonify({"success": True, "vaccine": vaccine}), 201


@patient_vaccination_bp.route('/patients/<string:patient_id>/vaccination', methods=['GET'])
@permission_required('vaccination:read_patient')
def patient_vaccination(patient_id):
    """Doctor view of a patient's vaccination data; needs an active care relationship."""
    grant = require_patient_access(g.current_user, patient_id)
    result = sync_vaccination(ConnectionStore.elevated(grant))
    return jsonify({"success": True, **result}), 200
