# oncotrack_pkg/connections/services.py
from urllib.parse import urlencode
from flask import current_app
from ..audit.services import create_audit_log
from ..exceptions import InputValidationError, IdentityMismatchError, ConnectionNotFoundError
from ..utils import create_correlation_token, verify_correlation_token
from .client import CadernetaClient, PROVIDER_MINHA_CADERNETA
from .normalize import normalize_vaccination_payload
from .store import ConnectionStore


def initiate_connection(user):
    """
    Builds the partner authorization URL. Nothing is stored locally; the
    correlation token is the caller's proof of the attempt on completion.
    """
    provider = PROVIDER_MINHA_CADERNETA
    correlation_token = create_correlation_token(user.id, provider)
    callback_url = f"{current_app.config['FRONTEND_URL']}/vaccination?" + urlencode({
        "connected": "true",
        "correlation_token": correlation_token,
    })
    connect_url = f"{current_app.config['CADERNETA_APP_URL']}/connect?" + urlencode({
        "source": "oncotrack",
        "oncotrack_user_id": user.id,
        "callback_url": callback_url,
    })
    current_app.logger.info(f"[Handshake] Connection attempt initiated for user {user.id}.")
    return {
        "provider": provider,
        "connect_url": connect_url,
        "correlation_token": correlation_token,
        "expires_in_minutes": current_app.config.get('CONNECT_CORRELATION_TTL_MINUTES', 15),
    }


def complete_connection(caller, target_user_id, correlation_token=None, client=None):
    """
    Finishes the handshake: checks identity, swaps the partner's pending
    authorization for a token and upserts the active connection row.
    Every check runs before the partner call and the write.
    """
    provider = PROVIDER_MINHA_CADERNETA
    if not target_user_id:
        raise InputValidationError("user_id is required.", field="user_id")
    if target_user_id != caller.id:
        current_app.logger.warning(
            f"[Handshake] User id mismatch: caller {caller.id} tried to complete for {target_user_id!r}."
        )
        raise IdentityMismatchError()
    if correlation_token is not None:
        problem = verify_correlation_token(correlation_token, caller.id, provider)
        if problem:
            raise InputValidationError(problem, field="correlation_token")

    client = client or CadernetaClient.from_config()
    token_data = client.issue_token(caller.id)

    store = ConnectionStore.for_user(caller)
    connection = store.upsert_active(provider, token_data["connection_token"], token_data["metadata"])
    create_audit_log(
        action="CONNECTION_ESTABLISHED",
        target_model="ExternalConnection",
        target_id=connection.id,
        change_details={"provider": provider},
        commit=True
    )
    current_app.logger.info(f"[Handshake] Connection {connection.id} active for user {caller.id}.")
    return connection


def get_active_connection(user):
    return ConnectionStore.for_user(user).active(PROVIDER_MINHA_CADERNETA)


def sync_vaccination(store, client=None):
    """
    Reads vaccination data through the store's active connection and returns
    the normalized summary and list. last_sync_at moves only on success.
    """
    provider = PROVIDER_MINHA_CADERNETA
    connection = store.active(provider)
    if not connection:
        raise ConnectionNotFoundError(provider)

    client = client or CadernetaClient.from_config()
    payload = client.fetch_vaccination_data(connection.connection_token)
    normalized = normalize_vaccination_payload(payload)

    store.mark_synced(connection)
    current_app.logger.info(
        f"[Sync] User {store.user_id}: {normalized['summary']['total_vaccines']} vaccine(s), "
        f"{len(normalized['summary']['clinical_alerts'])} alert(s)."
    )
    return {**normalized, "connection": connection.to_dict()}


def disconnect(caller, connection_token, client=None):
    """
    Revokes the caller's active connection. The partner is told first on a
    best-effort basis; the local revoke happens whatever it answers.
    """
    provider = PROVIDER_MINHA_CADERNETA
    if not connection_token or not isinstance(connection_token, str):
        raise InputValidationError("connection_token is required.", field="connection_token")

    store = ConnectionStore.for_user(caller)
    connection = store.active_with_token(provider, connection_token)
    if not connection:
        raise ConnectionNotFoundError(provider)

    client = client or CadernetaClient.from_config()
    partner_notified = client.notify_disconnect(connection_token)

    store.revoke(connection)
    create_audit_log(
        action="CONNECTION_REVOKED",
        target_model="ExternalConnection",
        target_id=connection.id,
        change_details={"provider": provider, "partner_notified": partner_notified},
        commit=True
    )
    current_app.logger.info(f"[Handshake] Connection {connection.id} revoked for user {caller.id}.")
    return connection, partner_notified


def _require_text_field(data, field, message):
    value = data.get(field)
    if not isinstance(value, str) or not value.strip():
        raise InputValidationError(message, field=field)
    return value.strip()


def create_vaccine(caller, data, client=None):
    name = _require_text_field(data, 'name', "Vaccine name is required.")
    if not isinstance(data.get('date'), str) or not data['date']:
        raise InputValidationError("Date is required.", field="date")
    dose = _require_text_field(data, 'dose', "Dose is required.")
    observations = data.get('observations')
    observations = observations.strip() if isinstance(observations, str) and observations.strip() else None

    provider = PROVIDER_MINHA_CADERNETA
    connection = ConnectionStore.for_user(caller).active(provider)
    if not connection:
        raise ConnectionNotFoundError(provider)

    client = client or CadernetaClient.from_config()
    current_app.logger.info(f"[Vaccines] User {caller.id} registering '{name}' at the partner.")
    return client.create_vaccine(connection.connection_token, {
        "name": name,
        "date": data['date'],
        "dose": dose,
        "observations": observations,
    })
