"""
OpenID Connect discovery.

Fetches the identity provider's discovery document once and keeps it for the
lifetime of the process. A failed fetch is not cached; the next caller
retries.
"""

import logging
from typing import Optional

import httpx
from pydantic import ValidationError

from altinn_auth.auth.exceptions import DiscoveryError
from altinn_auth.logs.recorder import LoggedHttpClient
from altinn_auth.models import DiscoveryDocument

logger = logging.getLogger(__name__)


class DiscoveryService:
    """
    Process-wide discovery cache.

    Constructed once by the application factory and shared through app state.
    Concurrent first calls may each fetch the document; the last one to
    finish wins, which is harmless because the document is the same.
    """

    def __init__(self, discovery_url: str, http: LoggedHttpClient):
        self.discovery_url = discovery_url
        self._http = http
        self._config: Optional[DiscoveryDocument] = None

    @property
    def cached(self) -> Optional[DiscoveryDocument]:
        return self._config

    async def get_config(self) -> DiscoveryDocument:
        """
        Return the discovery document, fetching it on first use.

        Raises:
            DiscoveryError: If the endpoint is unreachable, times out, returns
                            a non-2xx status or a document without the
                            authorization, token or userinfo endpoint
        """
        if self._config is not None:
            return self._config

        logger.info(f"Fetching OpenID Connect configuration from {self.discovery_url}")

        try:
            response = await self._http.get(
                self.discovery_url,
                headers={"Accept": "application/json"},
            )
        except httpx.TimeoutException as e:
            raise DiscoveryError(f"Discovery request timed out: {e}") from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise DiscoveryError(f"Discovery endpoint unreachable: {e}") from e

        if not response.is_success:
            raise DiscoveryError(
                f"Discovery endpoint returned HTTP {response.status_code}"
            )

        try:
            document = response.json()
        except ValueError as e:
            raise DiscoveryError("Discovery document is not valid JSON") from e

        if not isinstance(document, dict):
            raise DiscoveryError("Discovery document is not a JSON object")

        try:
            config = DiscoveryDocument.model_validate(document)
        except ValidationError as e:
            missing = [
                ".".join(str(part) for part in err["loc"])
                for err in e.errors()
            ]
            raise DiscoveryError(
                f"Discovery document missing required fields: {', '.join(missing)}"
            ) from e

        self._config = config

        logger.info(
            "OpenID Connect configuration loaded successfully",
            extra={
                "authorization_endpoint": config.authorization_endpoint,
                "token_endpoint": config.token_endpoint,
                "userinfo_endpoint": config.userinfo_endpoint,
            },
        )
        return config

    async def prewarm(self) -> None:
        """Fetch the document in the background; failure waits for first use."""
        try:
            await self.get_config()
        except DiscoveryError as e:
            logger.warning(
                f"Failed to fetch OIDC configuration on startup. Will retry on first use. ({e.message})"
            )

    def reset(self) -> None:
        self._config = None
