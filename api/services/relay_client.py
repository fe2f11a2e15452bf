"""
Relay client for Contact Card.

Sends chat requests to the relay service (api/routes/relay.py) which
forwards them to the model provider. This is the only place the
extraction and query engines touch the network.

Failures are reported with three exception types:
- RequestFailure: no response was obtained (connection, timeout, DNS)
- UpstreamFailure: a non-2xx status came back; carries status and raw body
- MalformedResponse: a response came back but not in the expected shape

No retries happen here. Retrying is an explicit user action.
"""
import logging
from typing import Any, Optional

import httpx

from api.services.credential_store import CredentialStore, get_credential_store
from config.settings import settings

logger = logging.getLogger(__name__)

MODE_MANAGED = "managed"
MODE_BYOK = "byok"


class RelayError(Exception):
    """Base class for relay call failures."""

    user_message = "Something went wrong talking to the assistant."

    def __str__(self) -> str:
        return self.user_message


class RequestFailure(RelayError):
    """The request never produced a response."""

    def __init__(self, cause: Exception):
        self.cause = cause
        self.user_message = f"Network error: {cause}"
        super().__init__(self.user_message)


class UpstreamFailure(RelayError):
    """The relay or provider answered with a non-2xx status."""

    def __init__(self, status_code: int, body: str):
        self.status_code = status_code
        self.body = body
        self.user_message = f"HTTP {status_code}: {body}"
        super().__init__(self.user_message)


class MalformedResponse(RelayError):
    """A response arrived but could not be read as expected."""

    def __init__(self, detail: str = "Invalid response from server"):
        self.detail = detail
        self.user_message = detail
        super().__init__(detail)


def response_text(payload: Any) -> str:
    """
    Extract content[0].text from a provider message response.

    Raises:
        MalformedResponse: If the payload does not have that shape
    """
    try:
        text = payload["content"][0]["text"]
    except (KeyError, IndexError, TypeError):
        raise MalformedResponse("Invalid response from server: missing content text")
    if not isinstance(text, str):
        raise MalformedResponse("Invalid response from server: content text is not a string")
    return text


class RelayClient:
    """
    Client for the relay endpoint.

    Credential selection: an explicit api_key argument wins; otherwise, if a
    BYOK key is stored in the credential store, it is forwarded in byok mode;
    otherwise the request runs in the configured mode (managed by default).
    """

    def __init__(
        self,
        relay_url: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        credential_store: Optional[CredentialStore] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize relay client.

        Args:
            relay_url: Relay endpoint (default from settings)
            model: Model identifier (default from settings)
            timeout: Request timeout in seconds (default from settings)
            credential_store: Where BYOK keys are read from
            transport: Optional httpx transport (used by tests)
        """
        self.relay_url = relay_url or settings.relay_url
        self.model = model or settings.model
        self.timeout = timeout or settings.request_timeout
        self.credential_store = credential_store or get_credential_store()
        self._transport = transport

    def build_body(
        self,
        messages: list[dict],
        output_schema: Optional[dict] = None,
        mode: Optional[str] = None,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
    ) -> dict:
        """Build the relay request body."""
        if api_key is None and mode != MODE_MANAGED:
            with self.credential_store.acquire() as stored_key:
                api_key = stored_key

        if mode is None:
            mode = MODE_BYOK if api_key else settings.auth_mode

        body: dict = {
            "mode": mode,
            "messages": messages,
            "model": model or self.model,
        }
        if mode == MODE_BYOK and api_key:
            body["apiKey"] = api_key
        if output_schema is not None:
            body["output_config"] = {
                "format": {
                    "type": "json_schema",
                    "schema": output_schema,
                }
            }
        return body

    def uses_own_key(self) -> bool:
        """True when calls will be billed to the user's own key."""
        return self.credential_store.has_key()

    async def send(
        self,
        messages: list[dict],
        output_schema: Optional[dict] = None,
        mode: Optional[str] = None,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
    ) -> dict:
        """
        POST a chat request to the relay.

        Args:
            messages: [{"role": ..., "content": ...}]
            output_schema: JSON Schema for structured output, if any
            mode: "managed" or "byok" (auto-selected when None)
            api_key: Caller-supplied key for byok mode
            model: Model override

        Returns:
            Parsed JSON response body

        Raises:
            RequestFailure, UpstreamFailure, MalformedResponse
        """
        body = self.build_body(messages, output_schema, mode, api_key, model)
        logger.debug(f"Relay request: mode={body['mode']} model={body['model']} structured={output_schema is not None}")

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.relay_url, json=body)
        except httpx.HTTPError as e:
            logger.error(f"Relay request failed: {e}")
            raise RequestFailure(e) from e

        if not response.is_success:
            logger.error(f"Relay returned HTTP {response.status_code}")
            raise UpstreamFailure(response.status_code, response.text or "No body")

        try:
            return response.json()
        except ValueError as e:
            raise MalformedResponse("Invalid response from server: body is not JSON") from e


# Singleton instance
_relay_client: Optional[RelayClient] = None


def get_relay_client() -> RelayClient:
    """Get or create the singleton RelayClient."""
    global _relay_client
    if _relay_client is None:
        _relay_client = RelayClient()
    return _relay_client


def reset_relay_client() -> None:
    """Reset the singleton (for testing)."""
    global _relay_client
    _relay_client = None
