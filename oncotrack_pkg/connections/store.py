# oncotrack_pkg/connections/store.py
import datetime
import uuid
from sqlalchemy.dialects import postgresql, sqlite
from .. import db
from ..models import ExternalConnection
from ..access.services import PatientAccessGrant
from ..exceptions import PermissionDeniedError

_DIALECT_INSERTS = {
    'postgresql': postgresql.insert,
    'sqlite': sqlite.insert,
}


class ConnectionStore:
    """
    Connection rows of exactly one user. A store for the caller comes from
    for_user(); a store for someone else only from elevated(grant).
    """

    def __init__(self, user_id):
        self.user_id = user_id

    @classmethod
    def for_user(cls, user):
        return cls(user.id)

    @classmethod
    def elevated(cls, grant):
        """Cross-user read for a doctor, scoped to the patient named in the grant."""
        if not isinstance(grant, PatientAccessGrant):
            raise PermissionDeniedError("A patient access grant is required.")
        return cls(grant.patient_id)

    def _query(self, provider):
        return ExternalConnection.query.filter_by(user_id=self.user_id, provider=provider)

    def active(self, provider):
        return self._query(provider).filter_by(status='active').first()

    def active_with_token(self, provider, connection_token):
        return self._query(provider).filter_by(status='active', connection_token=connection_token).first()

    def upsert_active(self, provider, connection_token, metadata=None):
        """
        INSERT ... ON CONFLICT (user_id, provider) DO UPDATE. A repeat for the
        same pair refreshes token, metadata and timestamps on the one row.
        """
        dialect = db.engine.dialect.name
        insert = _DIALECT_INSERTS.get(dialect)
        if insert is None:
            raise RuntimeError(f"Upsert is not supported for database dialect '{dialect}'.")

        now = datetime.datetime.utcnow()
        stmt = insert(ExternalConnection.__table__).values(
            id=str(uuid.uuid4()),
            user_id=self.user_id,
            provider=provider,
            connection_token=connection_token,
            status='active',
            connected_at=now,
            connection_metadata=metadata or {},
            created_at=now,
            updated_at=now
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=['user_id', 'provider'],
            set_={
                'connection_token': stmt.excluded.connection_token,
                'status': 'active',
                'connected_at': stmt.excluded.connected_at,
                'connection_metadata': stmt.excluded.connection_metadata,
                'updated_at': stmt.excluded.updated_at,
            }
        )
        db.session.execute(stmt)
        db.session.commit()
        return self._query(provider).one()

    def mark_synced(self, connection):
        connection.last_sync_at = datetime.datetime.utcnow()
        db.session.commit()
        return connection

    def revoke(self, connection):
        connection.status = 'revoked'
        connection.updated_at = datetime.datetime.utcnow()
        db.session.commit()
        return connection
