# oncotrack_pkg/access/services.py
import datetime
from collections import namedtuple
from flask import current_app
from .. import db
from ..models import DoctorPatientAccess, User
from ..exceptions import PermissionDeniedError, InputValidationError, ResourceNotFoundError

# Proof that `caller_id` may act on `patient_id`. Only require_patient_access()
# builds one; the connection store accepts it for cross-user reads.
PatientAccessGrant = namedtuple('PatientAccessGrant', ['caller_id', 'patient_id', 'via_doctor'])


def doctor_has_patient_access(doctor_id, patient_id):
    return db.session.query(
        DoctorPatientAccess.query.filter_by(
            doctor_id=doctor_id, patient_id=patient_id, status='active'
        ).exists()
    ).scalar()


def require_patient_access(caller, patient_id):
    """
    Raises PermissionDeniedError unless caller is the patient or a doctor with
    an active relationship to them.
    """
    if caller.id == patient_id:
        return PatientAccessGrant(caller_id=caller.id, patient_id=patient_id, via_doctor=False)

    if caller.has_role('doctor') and doctor_has_patient_access(caller.id, patient_id):
        return PatientAccessGrant(caller_id=caller.id, patient_id=patient_id, via_doctor=True)

    current_app.logger.warning(f"[Access] User {caller.id} denied access to patient {patient_id}.")
    raise PermissionDeniedError("You do not have access to this patient.", details={"patient_id": patient_id})


def grant_doctor_access(patient, doctor_id):
    if not doctor_id or not isinstance(doctor_id, str):
        raise InputValidationError("doctor_id is required.", field="doctor_id")

    doctor = db.session.get(User, doctor_id)
    if not doctor or not doctor.has_role('doctor'):
        raise InputValidationError("doctor_id does not belong to a registered doctor.", field="doctor_id")

    access = DoctorPatientAccess.query.filter_by(doctor_id=doctor.id, patient_id=patient.id).first()
    if access:
        access.status = 'active'
        access.granted_at = datetime.datetime.utcnow()
        access.revoked_at = None
    else:
        access = DoctorPatientAccess(doctor_id=doctor.id, patient_id=patient.id, status='active')
        db.session.add(access)
    db.session.commit()
    current_app.logger.info(f"[Access] Patient {patient.id} granted access to doctor {doctor.id}.")
    return access


def revoke_doctor_access(patient, doctor_id):
    access = DoctorPatientAccess.query.filter_by(
        doctor_id=doctor_id, patient_id=patient.id, status='active'
    ).first()
    if not access:
        raise ResourceNotFoundError("No active access for this doctor.", resource="doctor_patient_access")

    access.status = 'revoked'
    access.revoked_at = datetime.datetime.utcnow()
    db.session.commit()
    current_app.logger.info(f"[Access] Patient {patient.id} revoked access of doctor {doctor_id}.")
    return access


def list_active_doctors(patient):
    return DoctorPatientAccess.query.filter_by(patient_id=patient.id, status='active') \
        .order_by(DoctorPatientAccess.granted_at.desc()).all()
