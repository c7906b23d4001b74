from . import db # Imports the db instance from __init__.py
from werkzeug.security import generate_password_hash, check_password_hash
import datetime
import uuid

# --- Association Tables (Many-to-Many) ---
user_roles = db.Table('user_roles',
    db.Column('user_id', db.String(36), db.ForeignKey('users.id'), primary_key=True),
    db.Column('role_id', db.Integer, db.ForeignKey('roles.id'), primary_key=True)
)

role_permissions = db.Table('role_permissions',
    db.Column('role_id', db.Integer, db.ForeignKey('roles.id'), primary_key=True),
    db.Column('permission_id', db.Integer, db.ForeignKey('permissions.id'), primary_key=True)
)


def _iso(value):
    return value.isoformat() if value else None


# --- Model Definitions ---

class User(db.Model):
    __tablename__ = 'users'
    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = db.Column(db.String(120), unique=True, nullable=False, index=True)
    hashed_password = db.Column(db.String(256), nullable=False)
    full_name = db.Column(db.String(120), nullable=True)
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=datetime.datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.datetime.utcnow, onupdate=datetime.datetime.utcnow)

    roles = db.relationship('Role', secondary=user_roles, lazy='subquery',
                            backref=db.backref('users', lazy=True))

    def set_password(self, password):
        self.hashed_password = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.hashed_password, password)

    def has_role(self, role_name):
        return any(role.name == role_name for role in self.roles)

    def get_permissions(self):
        perms = set()
        for role in self.roles:
            for perm in role.permissions:
                perms.add(perm.name)
        return sorted(perms)

    def to_dict(self, include_permissions=True, include_roles=True):
        data = {
            "id": self.id,
            "email": self.email,
            "full_name": self.full_name,
            "is_active": self.is_active,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at)
        }
        if include_roles:
            data["roles"] = [role.name for role in self.roles]
        if include_permissions:
            data["permissions"] = self.get_permissions()
        return data

    def __repr__(self):
        return f'<User {self.email}>'


class Role(db.Model):
    __tablename__ = 'roles'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(80), unique=True, nullable=False)
    description = db.Column(db.String(255))
    permissions = db.relationship('Permission', secondary=role_permissions, lazy='subquery',
                                  backref=db.backref('roles', lazy=True))
    def __repr__(self):
        return f'<Role {self.name}>'


class Permission(db.Model):
    __tablename__ = 'permissions'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(80), unique=True, nullable=False)
    description = db.Column(db.String(255))
    def __repr__(self):
        return f'<Permission {self.name}>'


class DoctorPatientAccess(db.Model):
    """An active row means the doctor may read and manage this patient's data."""
    __tablename__ = 'doctor_patient_access'
    __table_args__ = (db.UniqueConstraint('doctor_id', 'patient_id', name='uq_doctor_patient'),)

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    doctor_id = db.Column(db.String(36), db.ForeignKey('users.id'), nullable=False, index=True)
    patient_id = db.Column(db.String(36), db.ForeignKey('users.id'), nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False, default='active', comment="active | revoked")
    granted_at = db.Column(db.DateTime, default=datetime.datetime.utcnow)
    revoked_at = db.Column(db.DateTime, nullable=True)

    doctor = db.relationship('User', foreign_keys=[doctor_id])
    patient = db.relationship('User', foreign_keys=[patient_id])

    def to_dict(self):
        return {
            "id": self.id,
            "doctor_id": self.doctor_id,
            "doctor_name": self.doctor.full_name if self.doctor else None,
            "patient_id": self.patient_id,
            "status": self.status,
            "granted_at": _iso(self.granted_at),
            "revoked_at": _iso(self.revoked_at)
        }

    def __repr__(self):
        return f'<DoctorPatientAccess doctor:{self.doctor_id} patient:{self.patient_id} ({self.status})>'


class TreatmentPlan(db.Model):
    __tablename__ = 'treatment_plans'

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = db.Column(db.String(36), db.ForeignKey('users.id'), nullable=False, index=True) # The patient
    prescriber_id = db.Column(db.String(36), db.ForeignKey('users.id'), nullable=True)

    regimen_name = db.Column(db.String(255), nullable=False)
    line_of_therapy = db.Column(db.String(100), nullable=True)
    treatment_intent = db.Column(db.String(100), nullable=True)
    diagnosis_cid = db.Column(db.String(20), nullable=True)

    planned_cycles = db.Column(db.Integer, nullable=False)
    periodicity_days = db.Column(db.Integer, nullable=False)
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=True)
    status = db.Column(db.String(50), default='active')

    weight_kg = db.Column(db.Float, nullable=True)
    height_cm = db.Column(db.Float, nullable=True)
    bsa_m2 = db.Column(db.Float, nullable=True)

    # Release thresholds checked by the care team before each cycle
    anc_min = db.Column(db.Float, nullable=True)
    plt_min = db.Column(db.Float, nullable=True)
    scr_max = db.Column(db.Float, nullable=True)
    ast_alt_max_xuln = db.Column(db.Float, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.datetime.utcnow, onupdate=datetime.datetime.utcnow)

    drugs = db.relationship('TreatmentDrug', backref='plan', lazy=True,
                            cascade='all, delete-orphan', order_by='TreatmentDrug.sequence_order')
    cycles = db.relationship('TreatmentCycle', backref='plan', lazy=True,
                             cascade='all, delete-orphan', order_by='TreatmentCycle.cycle_number')
    prescriber = db.relationship('User', foreign_keys=[prescriber_id])

    def to_dict(self, include_children=True):
        data = {
            "id": self.id,
            "user_id": self.user_id,
            "prescriber_id": self.prescriber_id,
            "regimen_name": self.regimen_name,
            "line_of_therapy": self.line_of_therapy,
            "treatment_intent": self.treatment_intent,
            "diagnosis_cid": self.diagnosis_cid,
            "planned_cycles": self.planned_cycles,
            "periodicity_days": self.periodicity_days,
            "start_date": _iso(self.start_date),
            "end_date": _iso(self.end_date),
            "status": self.status,
            "weight_kg": self.weight_kg,
            "height_cm": self.height_cm,
            "bsa_m2": self.bsa_m2,
            "anc_min": self.anc_min,
            "plt_min": self.plt_min,
            "scr_max": self.scr_max,
            "ast_alt_max_xuln": self.ast_alt_max_xuln,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at)
        }
        if include_children:
            data["drugs"] = [d.to_dict() for d in self.drugs]
            data["cycles"] = [c.to_dict() for c in self.cycles]
        return data

    def __repr__(self):
        return f'<TreatmentPlan {self.regimen_name} for User {self.user_id}>'


class TreatmentDrug(db.Model):
    __tablename__ = 'treatment_drugs'

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    treatment_plan_id = db.Column(db.String(36), db.ForeignKey('treatment_plans.id'), nullable=False, index=True)
    drug_name = db.Column(db.String(255), nullable=False)
    reference_dose = db.Column(db.Float, nullable=False)
    dose_unit = db.Column(db.String(10), nullable=False, comment="mg | mg/m2 | mg/kg")
    route = db.Column(db.String(50), nullable=False)
    day_codes = db.Column(db.JSON, nullable=False, default=list, comment="Ordered cycle-day labels, e.g. ['D1', 'D8']")
    sequence_order = db.Column(db.Integer, nullable=True)
    diluent = db.Column(db.String(100), nullable=True)
    volume_ml = db.Column(db.Float, nullable=True)
    infusion_time_min = db.Column(db.Integer, nullable=True)

    def to_dict(self):
        return {
            "id": self.id,
            "treatment_plan_id": self.treatment_plan_id,
            "drug_name": self.drug_name,
            "reference_dose": self.reference_dose,
            "dose_unit": self.dose_unit,
            "route": self.route,
            "day_codes": list(self.day_codes or []),
            "sequence_order": self.sequence_order,
            "diluent": self.diluent,
            "volume_ml": self.volume_ml,
            "infusion_time_min": self.infusion_time_min
        }

    def __repr__(self):
        return f'<TreatmentDrug {self.drug_name} {self.reference_dose} {self.dose_unit}>'


class TreatmentCycle(db.Model):
    __tablename__ = 'treatment_cycles'
    __table_args__ = (db.UniqueConstraint('treatment_plan_id', 'cycle_number', name='uq_plan_cycle_number'),)

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    treatment_plan_id = db.Column(db.String(36), db.ForeignKey('treatment_plans.id'), nullable=False, index=True)
    cycle_number = db.Column(db.Integer, nullable=False)
    scheduled_date = db.Column(db.Date, nullable=False)
    actual_date = db.Column(db.Date, nullable=True)
    status = db.Column(db.String(50), default='scheduled')
    release_status = db.Column(
        db.String(50),
        nullable=False,
        default='pending',
        comment="Valid values: pending, released, delayed, dose_adjusted, cancelled"
    )

    anc_value = db.Column(db.Float, nullable=True)
    plt_value = db.Column(db.Float, nullable=True)
    scr_value = db.Column(db.Float, nullable=True)
    ast_value = db.Column(db.Float, nullable=True)
    alt_value = db.Column(db.Float, nullable=True)
    bilirubin_value = db.Column(db.Float, nullable=True)

    release_decision_by = db.Column(db.String(36), db.ForeignKey('users.id'), nullable=True)
    release_decision_at = db.Column(db.DateTime, nullable=True)
    delay_reason = db.Column(db.Text, nullable=True)
    dose_adjustments = db.Column(db.JSON, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.datetime.utcnow, onupdate=datetime.datetime.utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "treatment_plan_id": self.treatment_plan_id,
            "cycle_number": self.cycle_number,
            "scheduled_date": _iso(self.scheduled_date),
            "actual_date": _iso(self.actual_date),
            "status": self.status,
            "release_status": self.release_status,
            "anc_value": self.anc_value,
            "plt_value": self.plt_value,
            "scr_value": self.scr_value,
            "ast_value": self.ast_value,
            "alt_value": self.alt_value,
            "bilirubin_value": self.bilirubin_value,
            "release_decision_by": self.release_decision_by,
            "release_decision_at": _iso(self.release_decision_at),
            "delay_reason": self.delay_reason,
            "dose_adjustments": self.dose_adjustments
        }

    def __repr__(self):
        return f'<TreatmentCycle #{self.cycle_number} of Plan {self.treatment_plan_id} on {self.scheduled_date}>'


class ExternalConnection(db.Model):
    """
    Per-user link to a partner system. One row per (user, provider); rows are
    never deleted, revocation only flips the status.
    """
    __tablename__ = 'external_connections'
    __table_args__ = (db.UniqueConstraint('user_id', 'provider', name='uq_external_connection_user_provider'),)

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = db.Column(db.String(36), db.ForeignKey('users.id'), nullable=False, index=True)
    provider = db.Column(db.String(50), nullable=False, comment="E.g., minha_caderneta")
    connection_token = db.Column(db.String(512), nullable=False)
    status = db.Column(db.String(20), nullable=False, default='active', index=True, comment="active | revoked")
    connected_at = db.Column(db.DateTime, default=datetime.datetime.utcnow, nullable=False)
    last_sync_at = db.Column(db.DateTime, nullable=True)
    connection_metadata = db.Column(db.JSON, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.datetime.utcnow, onupdate=datetime.datetime.utcnow)

    @property
    def is_active(self):
        return self.status == 'active'

    def to_dict(self, include_token=False):
        data = {
            "id": self.id,
            "user_id": self.user_id,
            "provider": self.provider,
            "status": self.status,
            "connected_at": _iso(self.connected_at),
            "last_sync_at": _iso(self.last_sync_at),
            "metadata": self.connection_metadata or {},
            "updated_at": _iso(self.updated_at)
        }
        if include_token:
            data["connection_token"] = self.connection_token
        return data

    def __repr__(self):
        return f'<ExternalConnection {self.provider} for User {self.user_id} ({self.status})>'


class AuditLog(db.Model):
    __tablename__ = 'audit_logs'

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    action = db.Column(db.String(100), nullable=False, index=True)
    target_model = db.Column(db.String(100), nullable=True)
    target_id = db.Column(db.String(36), nullable=True)
    change_details = db.Column(db.JSON, nullable=True)
    user_id = db.Column(db.String(36), nullable=True, index=True)
    ip_address = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.datetime.utcnow, nullable=False, index=True)

    def to_dict(self):
        return {
            "id": self.id,
            "action": self.action,
            "target_model": self.target_model,
            "target_id": self.target_id,
            "change_details": self.change_details,
            "user_id": self.user_id,
            "ip_address": self.ip_address,
            "created_at": _iso(self.created_at)
        }

    def __repr__(self):
        return f'<AuditLog {self.action} {self.target_model}:{self.target_id}>'
