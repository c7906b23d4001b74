# oncotrack_pkg/audit/listeners.py
from sqlalchemy import event
from sqlalchemy.orm import attributes
from ..models import TreatmentPlan, TreatmentCycle
from .services import write_audit_log_on_connection


@event.listens_for(TreatmentPlan, 'after_insert')
def after_treatment_plan_insert(mapper, connection, target):
    """Listen for new TreatmentPlan records."""
    details = {
        "message": f"Treatment plan '{target.regimen_name}' created for user {target.user_id}.",
        "planned_cycles": target.planned_cycles,
        "periodicity_days": target.periodicity_days,
        "bsa_m2": target.bsa_m2
    }
    write_audit_log_on_connection(
        connection,
        action="TREATMENT_PLAN_CREATE",
        target_model="TreatmentPlan",
        target_id=target.id,
        change_details=details
    )


@event.listens_for(TreatmentCycle, 'after_update')
def after_cycle_update(mapper, connection, target):
    """Only release decisions are audited for cycles; lab edits are not."""
    history = attributes.get_history(target, 'release_status')
    if not history.has_changes():
        return
    old_value = history.deleted[0] if history.deleted else None
    new_value = history.added[0] if history.added else None
    write_audit_log_on_connection(
        connection,
        action="CYCLE_RELEASE_DECISION",
        target_model="TreatmentCycle",
        target_id=target.id,
        change_details={"release_status": {"new": new_value, "old": old_value}}
    )


def register_audit_listeners(app):
    """Called by the app factory; importing this module attaches the listeners."""
    app.logger.debug("Audit listeners registered.")
