"""
OAuth 2.0 authorization code flow with PKCE.

States:

    NoSession --initiate_login--> PendingLogin --handle_callback--> Authenticated
        ^                                                                |
        +------------------------------ logout --------------------------+

A callback either completes (a fresh authenticated record is returned) or
raises; the caller decides what to do with the cookie. Nothing is persisted
for a half-finished callback.
"""

import base64
import hmac
import json
import logging
import math
import time
from typing import Any, Dict, Optional, Tuple
from urllib.parse import urlencode

import httpx

from altinn_auth.auth import events
from altinn_auth.auth.claims import decode_token_claims, extract_authorization_details
from altinn_auth.auth.discovery import DiscoveryService
from altinn_auth.auth.events import EventEmitter
from altinn_auth.auth.exceptions import (
    ConfigurationError,
    MissingCodeError,
    MissingVerifierError,
    ProviderError,
    StateMismatchError,
    TokenExchangeError,
    UserInfoFetchError,
)
from altinn_auth.auth.pkce import generate_nonce, generate_pkce, generate_state
from altinn_auth.config import Settings
from altinn_auth.logs.recorder import LoggedHttpClient
from altinn_auth.models import CurrentUserView, DiscoveryDocument, SessionRecord

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


def _states_match(received: Optional[str], expected: Optional[str]) -> bool:
    """Exact comparison; a session without a stored state never matches."""
    if received is None or expected is None:
        return False
    return hmac.compare_digest(received.encode("utf-8"), expected.encode("utf-8"))


def _basic_auth(client_id: str, client_secret: str) -> str:
    credentials = f"{client_id}:{client_secret}".encode("utf-8")
    return f"Basic {base64.b64encode(credentials).decode('ascii')}"


def _expires_at(expires_in: Any) -> Optional[int]:
    """None if absent; raises TokenExchangeError unless a finite number."""
    if expires_in is None:
        return None
    try:
        seconds = float(expires_in)
    except (TypeError, ValueError) as e:
        raise TokenExchangeError("Token response has non-numeric expires_in") from e
    millis = seconds * 1000
    if not math.isfinite(millis):
        raise TokenExchangeError("Token response has non-finite expires_in")
    return _now_ms() + int(millis)


class AuthFlow:
    """
    Login, callback, logout and session projection.

    Holds no per-user state; every call takes and/or returns a SessionRecord.
    """

    def __init__(
        self,
        settings: Settings,
        discovery: DiscoveryService,
        http: LoggedHttpClient,
        emitter: Optional[EventEmitter] = None,
    ):
        self.settings = settings
        self.discovery = discovery
        self.http = http
        self.events = emitter or EventEmitter()

    # =========================================================================
    # Login
    # =========================================================================

    def build_authorization_url(
        self,
        config: DiscoveryDocument,
        state: str,
        nonce: str,
        code_challenge: str,
    ) -> str:
        params = {
            "client_id": self.settings.CLIENT_ID,
            "redirect_uri": self.settings.redirect_uri,
            "response_type": "code",
            "scope": self.settings.OAUTH_SCOPES,
            "state": state,
            "nonce": nonce,
            "code_challenge": code_challenge,
            "code_challenge_method": "S256",
        }

        rar_details = self.settings.rar_authorization_details
        if rar_details is not None:
            params["authorization_details"] = json.dumps(rar_details, separators=(",", ":"))
            logger.info("Including RAR authorization_details in authorization request")

        separator = "&" if "?" in config.authorization_endpoint else "?"
        return f"{config.authorization_endpoint}{separator}{urlencode(params)}"

    async def initiate_login(self) -> Tuple[str, SessionRecord]:
        """
        Start a login.

        Returns:
            (authorization URL to redirect to, pending session record)

        Raises:
            DiscoveryError: If the discovery document cannot be loaded
            ConfigurationError: If it has no authorization endpoint
        """
        config = await self.discovery.get_config()
        if not config.authorization_endpoint:
            raise ConfigurationError()

        pkce = generate_pkce()
        state = generate_state()
        nonce = generate_nonce()

        session = SessionRecord(
            oauth_state=state,
            oauth_nonce=nonce,
            code_verifier=pkce.verifier,
        )
        url = self.build_authorization_url(config, state, nonce, pkce.challenge)

        self.events.emit(
            events.LOGIN_INITIATED,
            authorization_endpoint=config.authorization_endpoint,
            rar=self.settings.rar_authorization_details is not None,
        )
        return url, session

    # =========================================================================
    # Callback
    # =========================================================================

    def validate_callback(
        self,
        code: Optional[str],
        state: Optional[str],
        error: Optional[str],
        session: SessionRecord,
        error_description: Optional[str] = None,
    ) -> Tuple[str, str]:
        """
        Check callback parameters against the pending session.

        Order matters: provider error, state, code, verifier.

        Returns:
            (code, code_verifier)
        """
        if error:
            raise ProviderError(error, error_description)

        if not _states_match(state, session.oauth_state):
            logger.warning("State mismatch on callback")
            raise StateMismatchError()

        if not code:
            raise MissingCodeError()

        if not session.code_verifier:
            raise MissingVerifierError()

        self.events.emit(events.CALLBACK_VALIDATED)
        return code, session.code_verifier

    async def exchange_code(
        self,
        config: DiscoveryDocument,
        code: str,
        code_verifier: str,
    ) -> Dict[str, Any]:
        """
        Exchange the authorization code at the token endpoint.

        The client authenticates with HTTP Basic (client_secret_basic).

        Raises:
            ConfigurationError: If the discovery document has no token endpoint
            TokenExchangeError: On transport failure, non-2xx, non-JSON body, a
                                body without access_token or non-string tokens
        """
        if not config.token_endpoint:
            raise ConfigurationError()

        payload = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.settings.redirect_uri,
            "code_verifier": code_verifier,
        }
        headers = {
            "Content-Type": "application/x-www-form-urlencoded",
            "Authorization": _basic_auth(self.settings.CLIENT_ID, self.settings.CLIENT_SECRET),
        }

        try:
            response = await self.http.post(config.token_endpoint, data=payload, headers=headers)
        except httpx.TimeoutException as e:
            raise TokenExchangeError("Token endpoint timed out") from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise TokenExchangeError(f"Token endpoint unreachable: {e}") from e

        try:
            token_data = response.json()
        except ValueError:
            token_data = None

        if not response.is_success:
            provider_error = token_data.get("error") if isinstance(token_data, dict) else None
            logger.error(
                f"Token exchange failed with HTTP {response.status_code}",
                extra={"provider_error": provider_error},
            )
            raise TokenExchangeError(
                f"Token exchange failed: {provider_error or response.status_code}"
            )

        if not isinstance(token_data, dict):
            raise TokenExchangeError("Token response is not a JSON object")

        if not token_data.get("access_token"):
            logger.error("No access_token in token response")
            raise TokenExchangeError("Token response missing access_token")

        for field in ("access_token", "id_token", "refresh_token"):
            value = token_data.get(field)
            if value is not None and not isinstance(value, str):
                logger.error(f"Token response has non-string {field}")
                raise TokenExchangeError(f"Token response {field} is not a string")

        return token_data

    async def fetch_userinfo(self, config: DiscoveryDocument, access_token: str) -> Dict[str, Any]:
        """
        Raises:
            UserInfoFetchError: On transport failure, non-2xx or non-object body
        """
        try:
            response = await self.http.get(
                config.userinfo_endpoint,
                headers={
                    "Authorization": f"Bearer {access_token}",
                    "Accept": "application/json",
                },
            )
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise UserInfoFetchError(f"Userinfo endpoint unreachable: {e}") from e

        if not response.is_success:
            raise UserInfoFetchError(f"Userinfo returned HTTP {response.status_code}")

        try:
            user_info = response.json()
        except ValueError as e:
            raise UserInfoFetchError("Userinfo response is not JSON") from e

        if not isinstance(user_info, dict):
            raise UserInfoFetchError("Userinfo response is not a JSON object")
        return user_info

    async def handle_callback(
        self,
        code: Optional[str],
        state: Optional[str],
        error: Optional[str],
        session: SessionRecord,
        error_description: Optional[str] = None,
    ) -> SessionRecord:
        """
        Complete a login.

        Returns:
            A new authenticated SessionRecord; none of the pending fields are
            carried over.

        Raises:
            ProviderError, StateMismatchError, MissingCodeError,
            MissingVerifierError: Callback validation failures
            DiscoveryError, ConfigurationError: Provider configuration missing
            TokenExchangeError: Token endpoint failure or malformed expires_in
        """
        code, code_verifier = self.validate_callback(
            code, state, error, session, error_description
        )

        config = await self.discovery.get_config()
        token_data = await self.exchange_code(config, code, code_verifier)

        access_token = token_data["access_token"]
        id_token = token_data.get("id_token")
        expires_at = _expires_at(token_data.get("expires_in"))

        self.events.emit(
            events.TOKEN_EXCHANGED,
            has_id_token=bool(id_token),
            has_refresh_token=bool(token_data.get("refresh_token")),
            expires_in=token_data.get("expires_in"),
        )

        id_token_claims = decode_token_claims(id_token)
        access_token_claims = decode_token_claims(access_token)

        if id_token_claims and session.oauth_nonce:
            token_nonce = id_token_claims.get("nonce")
            if token_nonce is not None and token_nonce != session.oauth_nonce:
                logger.warning("ID token nonce does not match the session nonce")

        authorization_details = extract_authorization_details(
            id_token_claims, access_token_claims, token_data
        )

        user_info = None
        if config.userinfo_endpoint:
            try:
                user_info = await self.fetch_userinfo(config, access_token)
            except UserInfoFetchError as e:
                # Login still completes without userinfo.
                logger.error(f"Error fetching user info: {e.message}")
            else:
                self.events.emit(events.USERINFO_FETCHED, claims=sorted(user_info.keys()))
        else:
            logger.warning("Userinfo endpoint not available in OIDC configuration")

        return SessionRecord(
            access_token=access_token,
            refresh_token=token_data.get("refresh_token") or None,
            id_token=id_token or None,
            token_expires_at=expires_at,
            user_info=user_info,
            id_token_claims=id_token_claims,
            authorization_details=authorization_details,
        )

    # =========================================================================
    # Logout / Projection
    # =========================================================================

    def logout(self) -> SessionRecord:
        """Drop everything; safe to call in any state."""
        self.events.emit(events.SESSION_CLEARED)
        return SessionRecord()

    @staticmethod
    def get_current_user(session: SessionRecord) -> CurrentUserView:
        if not session.access_token:
            return CurrentUserView(authenticated=False)

        return CurrentUserView(
            authenticated=True,
            user_info=session.user_info,
            token_expires_at=session.token_expires_at,
            authorization_details=session.authorization_details,
            id_token_claims=session.id_token_claims,
        )
