# oncotrack_pkg/audit/services.py
import datetime
import uuid
from flask import request, g, has_request_context
from .. import db
from ..models import AuditLog


def _request_context_fields():
    user_id = None
    ip_address = None
    user_agent = None
    if has_request_context():
        if getattr(g, 'current_user', None):
            user_id = g.current_user.id
        ip_address = request.remote_addr
        user_agent = request.user_agent.string if request.user_agent else None
    return user_id, ip_address, user_agent


def create_audit_log(action, target_model=None, target_id=None, change_details=None, commit=False):
    """
    Creates an audit log entry.
    It automatically captures user, IP, and user agent from the request context.
    The session is not committed automatically unless specified.
    """
    user_id, ip_address, user_agent = _request_context_fields()
    log_entry = AuditLog(
        action=action,
        target_model=target_model,
        target_id=str(target_id) if target_id else None,
        change_details=change_details,
        user_id=user_id,
        ip_address=ip_address,
        user_agent=user_agent
    )
    db.session.add(log_entry)

    if commit:
        db.session.commit()
    return log_entry


def write_audit_log_on_connection(connection, action, target_model, target_id, change_details=None):
    """
    Variant for mapper event listeners: writes through the flush connection,
    since the session cannot take new objects while it is flushing.
    """
    user_id, ip_address, user_agent = _request_context_fields()
    connection.execute(
        AuditLog.__table__.insert().values(
            id=str(uuid.uuid4()),
            action=action,
            target_model=target_model,
            target_id=str(target_id) if target_id else None,
            change_details=change_details,
            user_id=user_id,
            ip_address=ip_address,
            user_agent=user_agent,
            created_at=datetime.datetime.utcnow()
        )
    )
