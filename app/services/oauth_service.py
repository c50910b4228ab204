from __future__ import annotations

import secrets
from datetime import timedelta
from typing import Any, Optional
from urllib.parse import urlencode

import requests
from loguru import logger
from pydantic import ValidationError

from app.core.errors import OAuthError, OAuthNotConfigured, TokenError
from app.schemas.auth import OAuthProfile
from app.services.token_signer import TokenSigner

GOOGLE_AUTHORIZE_URL = 'https://accounts.google.com/o/oauth2/v2/auth'
GOOGLE_TOKEN_URL = 'https://oauth2.googleapis.com/token'
GOOGLE_USERINFO_URL = 'https://openidconnect.googleapis.com/v1/userinfo'
GOOGLE_SCOPES = ('openid', 'email', 'profile')
REQUEST_TIMEOUT_SECONDS = 10


class GoogleOAuthClient:
    """Authorization-code flow against Google.

    The ``state`` parameter is a short-lived token signed with the
    application secret, so the callback can be checked without server-side
    storage.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        signer: TokenSigner,
        state_ttl: timedelta = timedelta(minutes=10),
        http: Optional[requests.Session] = None,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self._signer = signer
        self._state_ttl = state_ttl
        self._http = http or requests.Session()

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret and self.redirect_uri)

    def authorization_url(self) -> str:
        self._require_configured()
        state = self._signer.sign_state(secrets.token_urlsafe(16), self._state_ttl)
        query = {
            'client_id': self.client_id,
            'redirect_uri': self.redirect_uri,
            'response_type': 'code',
            'scope': ' '.join(GOOGLE_SCOPES),
            'state': state,
            'access_type': 'online',
            'prompt': 'select_account',
        }
        return f'{GOOGLE_AUTHORIZE_URL}?{urlencode(query)}'

    def fetch_profile(self, code: str, state: str) -> OAuthProfile:
        self._require_configured()
        try:
            self._signer.verify_state(state)
        except TokenError as exc:
            raise OAuthError('invalid state') from exc

        token_payload = self._post_json(
            GOOGLE_TOKEN_URL,
            {
                'code': code,
                'client_id': self.client_id,
                'client_secret': self.client_secret,
                'redirect_uri': self.redirect_uri,
                'grant_type': 'authorization_code',
            },
        )
        access_token = token_payload.get('access_token')
        if not access_token:
            raise OAuthError('token response without access_token')

        userinfo = self._get_json(
            GOOGLE_USERINFO_URL, headers={'Authorization': f'Bearer {access_token}'}
        )
        if not userinfo.get('email_verified'):
            raise OAuthError('email not verified by provider')
        try:
            return OAuthProfile(
                email=userinfo.get('email'),
                given_name=userinfo.get('given_name') or '',
                family_name=userinfo.get('family_name') or '',
            )
        except ValidationError as exc:
            raise OAuthError('malformed userinfo') from exc

    def _require_configured(self) -> None:
        if not self.configured:
            raise OAuthNotConfigured('google client id/secret not set')

    def _post_json(self, url: str, data: dict[str, str]) -> dict[str, Any]:
        try:
            response = self._http.post(url, data=data, timeout=REQUEST_TIMEOUT_SECONDS)
        except requests.RequestException as exc:
            logger.warning('OAuth token exchange failed: {}', exc.__class__.__name__)
            raise OAuthError('token endpoint unreachable') from exc
        return self._parse(response, 'token endpoint')

    def _get_json(self, url: str, headers: dict[str, str]) -> dict[str, Any]:
        try:
            response = self._http.get(url, headers=headers, timeout=REQUEST_TIMEOUT_SECONDS)
        except requests.RequestException as exc:
            logger.warning('OAuth userinfo request failed: {}', exc.__class__.__name__)
            raise OAuthError('userinfo endpoint unreachable') from exc
        return self._parse(response, 'userinfo endpoint')

    @staticmethod
    def _parse(response: requests.Response, source: str) -> dict[str, Any]:
        if response.status_code != 200:
            raise OAuthError(f'{source} returned {response.status_code}')
        try:
            payload = response.json()
        except ValueError as exc:
            raise OAuthError(f'{source} returned invalid JSON') from exc
        if not isinstance(payload, dict):
            raise OAuthError(f'{source} returned unexpected payload')
        return payload
