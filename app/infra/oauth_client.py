# app/infra/oauth_client.py
import logging
from datetime import datetime, timedelta, timezone

import httpx

from app.errors import TokenExchangeError
from app.models.service_account import AccessCredential, ServiceAccountKey
from app.security.assertion import sign_assertion

logger = logging.getLogger(__name__)

JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"
DEFAULT_EXPIRES_IN = 3600


class TokenExchanger:
    """
    Cambia la aserción firmada por un access token OAuth2 (Bearer).
    No cachea nada: cada dispatch pide un token nuevo.
    """

    def __init__(self, http_client: httpx.AsyncClient):
        self._http = http_client

    async def fetch_access_token(self, service_account: ServiceAccountKey) -> AccessCredential:
        # SigningError sube tal cual: una clave rota no se arregla reintentando
        assertion = sign_assertion(service_account)

        try:
            response = await self._http.post(
                service_account.token_uri,
                data={"grant_type": JWT_BEARER_GRANT, "assertion": assertion},
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
        except httpx.HTTPError as e:
            raise TokenExchangeError(f"Failed to get access token: {e}") from e

        if not response.is_success:
            logger.error(
                "Token endpoint respondió %s: %s", response.status_code, response.text[:200]
            )
            raise TokenExchangeError(
                f"Failed to get access token: {response.text}", body=response.text
            )

        try:
            token_data = response.json()
            access_token = token_data["access_token"]
        except (ValueError, KeyError, TypeError) as e:
            raise TokenExchangeError(
                "Respuesta del token endpoint sin access_token", body=response.text
            ) from e

        expires_in = token_data.get("expires_in") or DEFAULT_EXPIRES_IN
        return AccessCredential(
            access_token=access_token,
            expires_at=datetime.now(timezone.utc) + timedelta(seconds=int(expires_in)),
        )
