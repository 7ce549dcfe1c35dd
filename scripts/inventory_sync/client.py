"""
client.py – Authenticated access to the WordPress REST API.

The client owns the JWT lifecycle: the token is cached on the injected
SyncState, renewed when its ``exp`` claim has passed, and renewed once more
(with a single retry of the request) when the server rejects it anyway.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Optional

import requests
from jose import JWTError, jwt

from .exceptions import AuthenticationError, RequestError
from .models import parse_id
from .state import SyncState

logger = logging.getLogger(__name__)

# Endpoint paths, relative to the API base (``https://host/wp-json``).
TOKEN_ENDPOINT = "jwt-auth/v1/token"
AUTOS_ENDPOINT = "wp/v2/autos"
MEDIA_ENDPOINT = "wp/v2/media"
TAXONOMY_BASE = "wp/v2"
RELATIONS_ENDPOINT = "jet-rel"

# Error codes meaning "the token you sent is no good, get another one".
INVALID_TOKEN_CODES = frozenset({"jwt_auth_invalid_token"})


def decode_token_expiry(token: str) -> float:
    """Return the ``exp`` claim (seconds since epoch) of a JWT.

    The signature is not verified; the claim is only used to know when to
    ask for a fresh token. Raises ``JWTError`` for a malformed token and
    ``KeyError`` when it carries no ``exp``.
    """
    claims = jwt.get_unverified_claims(token)
    return float(claims["exp"])


class WordPressClient:
    """Thin JSON client over ``requests.Session`` with JWT handling."""

    def __init__(
        self,
        api_base: str,
        username: str,
        password: str,
        state: Optional[SyncState] = None,
        *,
        session: Optional[requests.Session] = None,
        timeout: float = 30,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.api_base = api_base.rstrip("/")
        self._username = username
        self._password = password
        self.state = state if state is not None else SyncState()
        self._session = session or requests.Session()
        self._timeout = timeout
        self._clock = clock

    # ------------------------------------------------------------------
    # Token handling
    # ------------------------------------------------------------------

    def get_token(self) -> str:
        """Return the cached token, acquiring a new one if missing or expired."""
        if not self.state.has_valid_token(self._clock()):
            if self.state.token:
                logger.info("JWT token expired; requesting a new one")
            return self.refresh_token()
        return self.state.token

    def refresh_token(self) -> str:
        """Request a new JWT token and cache it on the state."""
        url = self.url_for(TOKEN_ENDPOINT)
        try:
            resp = self._session.request(
                "POST",
                url,
                json={"username": self._username, "password": self._password},
                headers={"Content-Type": "application/json"},
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise AuthenticationError(url, None, message=f"Token request failed: {exc}") from exc

        if resp.status_code != 200:
            raise AuthenticationError(url, resp.status_code, resp.text)
        try:
            token = resp.json()["data"]["token"]
            expires_at = decode_token_expiry(token)
        except (JWTError, ValueError, KeyError, TypeError) as exc:
            raise AuthenticationError(
                url, resp.status_code, resp.text,
                message=f"Token response from {url} is not usable: {exc}",
            ) from exc

        self.state.store_token(token, expires_at)
        logger.info(
            "Obtained JWT token (expires %s)",
            datetime.fromtimestamp(expires_at, tz=timezone.utc).isoformat(),
        )
        return token

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def url_for(self, endpoint: str) -> str:
        if endpoint.startswith(("http://", "https://")):
            return endpoint
        return f"{self.api_base}/{endpoint.lstrip('/')}"

    def request(
        self,
        method: str,
        endpoint: str,
        body: Optional[Any] = None,
        params: Optional[dict] = None,
    ) -> Any:
        """Perform an authenticated JSON request and return the parsed body.

        Raises RequestError for HTTP errors, empty bodies and invalid JSON.
        """
        url = self.url_for(endpoint)
        headers = {"Content-Type": "application/json"} if body is not None else {}
        resp = self._send(method, url, params=params, json_body=body, headers=headers)
        return self._parse(url, resp)

    def upload_media(
        self,
        content: bytes,
        filename: str,
        content_type: str,
        alt_text: Optional[str] = None,
    ) -> int:
        """Upload raw image bytes and return the new media id."""
        url = self.url_for(MEDIA_ENDPOINT)
        headers = {
            "Content-Type": content_type,
            "Content-Disposition": f'attachment; filename="{filename}"',
        }
        resp = self._send("POST", url, data=content, headers=headers)
        data = self._parse(url, resp)
        media_id = parse_id(data.get("id")) if isinstance(data, dict) else None
        if media_id is None:
            raise RequestError(url, resp.status_code, resp.text, message="Media upload returned no id")
        logger.info("Uploaded media '%s' (id=%s)", filename, media_id)

        if alt_text:
            try:
                self.request("POST", f"{MEDIA_ENDPOINT}/{media_id}", {"alt_text": alt_text})
            except RequestError as exc:
                logger.warning("Could not set alt text on media %s: %s", media_id, exc)
        return media_id

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _send(
        self,
        method: str,
        url: str,
        *,
        params: Optional[dict] = None,
        json_body: Optional[Any] = None,
        data: Optional[bytes] = None,
        headers: Optional[dict] = None,
    ) -> requests.Response:
        token = self.get_token()
        resp = self._perform(method, url, token, params, json_body, data, headers)
        if self._is_invalid_token(resp):
            logger.warning("JWT token rejected by %s; requesting a new one and retrying", url)
            token = self.refresh_token()
            resp = self._perform(method, url, token, params, json_body, data, headers)
        return resp

    def _perform(
        self,
        method: str,
        url: str,
        token: str,
        params: Optional[dict],
        json_body: Optional[Any],
        data: Optional[bytes],
        headers: Optional[dict],
    ) -> requests.Response:
        all_headers = {"Authorization": f"Bearer {token}"}
        all_headers.update(headers or {})
        logger.debug("%s %s params=%s", method, url, params)
        try:
            return self._session.request(
                method,
                url,
                params=params,
                json=json_body,
                data=data,
                headers=all_headers,
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise RequestError(url, None, message=f"Request to {url} failed: {exc}") from exc

    @staticmethod
    def _is_invalid_token(resp: requests.Response) -> bool:
        if resp.status_code not in (401, 403):
            return False
        try:
            body = resp.json()
        except ValueError:
            return False
        return isinstance(body, dict) and body.get("code") in INVALID_TOKEN_CODES

    @staticmethod
    def _parse(url: str, resp: requests.Response) -> Any:
        if resp.status_code >= 400:
            raise RequestError(url, resp.status_code, resp.text)
        text = resp.text
        if not text or not text.strip():
            raise RequestError(url, resp.status_code, "", message=f"Empty response from {url}")
        try:
            return resp.json()
        except ValueError as exc:
            raise RequestError(
                url, resp.status_code, text, message=f"Invalid JSON in response from {url}"
            ) from exc
