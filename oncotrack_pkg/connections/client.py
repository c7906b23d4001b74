# oncotrack_pkg/connections/client.py
"""
HTTP client for the Minha Caderneta partner API.

One request per call, the configured timeout, no retries. Connection tokens
are sent to the partner but never logged.
"""
import requests
from flask import current_app
from ..exceptions import (
    PendingAuthorizationNotFoundError, MalformedProviderResponseError, UpstreamServiceError
)

PROVIDER_MINHA_CADERNETA = 'minha_caderneta'

TOKEN_PATH = 'oncotrack-get-token'
VACCINES_PATH = 'oncotrack-get-vaccines'
DISCONNECT_PATH = 'oncotrack-disconnect'
CREATE_VACCINE_PATH = 'oncotrack-create-vaccine'


class CadernetaClient:
    provider = PROVIDER_MINHA_CADERNETA

    def __init__(self, base_url, timeout=10):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout

    @classmethod
    def from_config(cls, config=None):
        config = config or current_app.config
        return cls(config['CADERNETA_API_URL'], timeout=config.get('PARTNER_HTTP_TIMEOUT', 10))

    def _request(self, method, path, **kwargs):
        url = f"{self.base_url}/{path}"
        return requests.request(method, url, timeout=self.timeout, **kwargs)

    @staticmethod
    def _bearer(token):
        return {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}

    def issue_token(self, user_id):
        """
        Exchanges a pending partner-side authorization for a connection token.

        Returns:
            dict with a non-empty 'connection_token' and optional 'metadata'.
        """
        try:
            response = self._request('POST', TOKEN_PATH, json={"oncotrack_user_id": user_id})
        except requests.RequestException as e:
            current_app.logger.error(f"[CadernetaClient] Token request failed for user {user_id}: {e}")
            raise UpstreamServiceError("Could not reach the vaccination registry.", provider=self.provider)

        if not response.ok:
            current_app.logger.warning(
                f"[CadernetaClient] No pending authorization for user {user_id} "
                f"(status {response.status_code}): {response.text[:200]}"
            )
            raise PendingAuthorizationNotFoundError(self.provider, upstream_status=response.status_code)

        try:
            data = response.json()
        except ValueError:
            raise MalformedProviderResponseError(self.provider, "token response is not JSON")

        token = data.get('connection_token') if isinstance(data, dict) else None
        if not isinstance(token, str) or not token:
            current_app.logger.error(f"[CadernetaClient] Token response for user {user_id} has no connection_token.")
            raise MalformedProviderResponseError(self.provider, "no connection_token in response")

        metadata = data.get('metadata')
        return {"connection_token": token, "metadata": metadata if isinstance(metadata, dict) else {}}

    def fetch_vaccination_data(self, connection_token):
        try:
            response = self._request('GET', VACCINES_PATH, headers=self._bearer(connection_token))
        except requests.RequestException as e:
            current_app.logger.error(f"[CadernetaClient] Vaccination read failed: {e}")
            raise UpstreamServiceError("Could not reach the vaccination registry.", provider=self.provider)

        if not response.ok:
            current_app.logger.error(
                f"[CadernetaClient] Vaccination read returned {response.status_code}: {response.text[:200]}"
            )
            raise UpstreamServiceError(
                "Failed to fetch vaccination data from the partner.",
                provider=self.provider,
                upstream_status=response.status_code
            )

        try:
            payload = response.json()
        except ValueError:
            raise UpstreamServiceError("Vaccination registry returned an invalid payload.", provider=self.provider,
                                       upstream_status=response.status_code)
        if not isinstance(payload, dict):
            raise UpstreamServiceError("Vaccination registry returned an invalid payload.", provider=self.provider,
                                       upstream_status=response.status_code)
        return payload

    def notify_disconnect(self, connection_token):
        """
        Best-effort revoke on the partner side. Returns True when acknowledged;
        failures are logged and never raised.
        """
        try:
            response = self._request(
                'POST', DISCONNECT_PATH,
                headers={"Content-Type": "application/json", "x-oncotrack-token": connection_token}
            )
        except requests.RequestException as e:
            current_app.logger.warning(f"[CadernetaClient] Disconnect notification failed: {e}")
            return False

        if not response.ok:
            current_app.logger.warning(
                f"[CadernetaClient] Partner rejected disconnect notification ({response.status_code}): {response.text[:200]}"
            )
            return False
        current_app.logger.info("[CadernetaClient] Partner notified of disconnection.")
        return True

    def create_vaccine(self, connection_token, vaccine):
        try:
            response = self._request('POST', CREATE_VACCINE_PATH, headers=self._bearer(connection_token),
                                     json={**vaccine, "source": "oncotrack"})
        except requests.RequestException as e:
            current_app.logger.error(f"[CadernetaClient] Create vaccine failed: {e}")
            raise UpstreamServiceError("Could not reach the vaccination registry.", provider=self.provider)

        if not response.ok:
            current_app.logger.error(
                f"[CadernetaClient] Create vaccine returned {response.status_code}: {response.text[:200]}"
            )
            raise UpstreamServiceError("Failed to create vaccine at the partner.", provider=self.provider,
                                       upstream_status=response.status_code)
        try:
            return response.json()
        except ValueError:
            return {}
