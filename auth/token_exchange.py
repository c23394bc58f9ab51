"""Client-credential exchange against the token endpoint"""

import logging
import uuid
from typing import Optional

import httpx
from pydantic import BaseModel, ValidationError

from errors import AuthError
from .models import AuthToken, normalize_epoch_seconds

logger = logging.getLogger(__name__)


class AuthResponse(BaseModel):
    """Token endpoint response body"""
    access_token: str
    expires_at: int


class AuthApiClient:
    """Trades a pre-shared authorization key for a bearer token

    Each call is one ``POST {auth_host}/oauth`` carrying a fresh ``RqUID``
    correlation id. The caller decides when to call and whether to retry.
    """

    def __init__(
        self,
        auth_host: str,
        authorization_key: str,
        scope: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[httpx.Timeout] = None,
        verify: bool = True,
    ):
        """
        Args:
            auth_host: Base URL of the token service (without /oauth)
            authorization_key: Base64 client credentials for Basic auth
            scope: Scope requested for the token
            client: Optional shared HTTP client (one is created per call otherwise)
            timeout: Timeout for per-call clients
            verify: TLS verification for per-call clients
        """
        self.auth_host = auth_host.rstrip("/")
        self.authorization_key = authorization_key
        self.scope = scope
        self._client = client
        self._timeout = timeout or httpx.Timeout(30.0)
        self._verify = verify

    @property
    def token_url(self) -> str:
        return f"{self.auth_host}/oauth"

    def _get_headers(self, request_id: str) -> dict:
        return {
            "Authorization": f"Basic {self.authorization_key}",
            "RqUID": request_id,
            "Accept": "application/json",
        }

    async def get_access_token(self) -> AuthToken:
        """Request a new access token

        Returns:
            AuthToken with expiry normalized to seconds

        Raises:
            AuthError: On any transport, status or body failure
        """
        if not self.authorization_key:
            raise AuthError("Authorization key is not configured")

        request_id = str(uuid.uuid4())
        logger.info(f"[{request_id}] Requesting access token from {self.token_url}")

        try:
            if self._client is not None:
                response = await self._post(self._client, request_id)
            else:
                async with httpx.AsyncClient(timeout=self._timeout, verify=self._verify) as client:
                    response = await self._post(client, request_id)
        except httpx.HTTPError as e:
            logger.error(f"[{request_id}] Auth request failed: {e}")
            raise AuthError(f"Auth request failed: {e}") from e

        if response.status_code != 200:
            logger.error(f"[{request_id}] Auth failed with status {response.status_code}: {response.text}")
            raise AuthError(f"Auth failed: {response.status_code} - {response.text}")

        try:
            payload = AuthResponse.model_validate_json(response.content)
        except ValidationError as e:
            logger.error(f"[{request_id}] Failed to parse auth response: {e}")
            raise AuthError("Auth request failed: malformed token response") from e

        token = AuthToken(
            access_token=payload.access_token,
            expires_at=normalize_epoch_seconds(payload.expires_at),
        )
        logger.info(f"[{request_id}] Obtained access token expiring at {token.expires_at}")
        return token

    async def _post(self, client: httpx.AsyncClient, request_id: str) -> httpx.Response:
        return await client.post(
            self.token_url,
            data={"scope": self.scope},
            headers=self._get_headers(request_id),
        )
