# oncotrack_pkg/auth/services.py
from flask import current_app
from .. import db
from ..models import Role, Permission

# Role -> permission strings carried in the access token.
DEFAULT_ROLE_PERMISSIONS = {
    'patient': [
        'treatment:read',
        'treatment:write',
        'connection:manage',
        'vaccination:read',
        'access:manage',
    ],
    'doctor': [
        'treatment:read',
        'treatment:write',
        'treatment:release',
        'vaccination:read_patient',
    ],
}


def get_or_create_role(role_name):
    """
    Returns the Role, creating it and its default permissions if missing.
    Does not commit; the caller's transaction does.
    """
    if role_name not in DEFAULT_ROLE_PERMISSIONS:
        raise ValueError(f"Unknown role: {role_name}")

    role = Role.query.filter_by(name=role_name).first()
    if role:
        return role

    role = Role(name=role_name, description=f"Default {role_name} role")
    db.session.add(role)
    for perm_name in DEFAULT_ROLE_PERMISSIONS[role_name]:
        perm = Permission.query.filter_by(name=perm_name).first()
        if not perm:
            perm = Permission(name=perm_name)
            db.session.add(perm)
        role.permissions.append(perm)
    current_app.logger.info(f"[Auth] Created default role '{role_name}'.")
    return role
