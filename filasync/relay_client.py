"""HTTP client for the sync relay.

The relay exposes one endpoint. Every request is a JSON POST carrying a
`function` discriminator ("create", "pull", "push", "timestamp", "forgot")
and the app name. The client owns the wire format only; ordering and
bookkeeping belong to the sync engine.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import aiohttp

from .config import SyncConfig
from .errors import RelayError, TransportError
from .models import ExportEnvelope, PullResult

logger = logging.getLogger(__name__)


def _parse_envelope(payload: Any) -> ExportEnvelope:
    """Validate the pulled snapshot: {regular, local} lists of docs with string ids."""
    if payload is None:
        return ExportEnvelope()
    if not isinstance(payload, dict):
        raise TransportError("Invalid response from relay: snapshot is not an object")
    for section in ("regular", "local"):
        docs = payload.get(section) or []
        if not isinstance(docs, list):
            raise TransportError(f"Invalid response from relay: {section} is not a list")
        for doc in docs:
            if not isinstance(doc, dict) or not isinstance(doc.get("_id"), str) or not doc["_id"]:
                raise TransportError(f"Invalid response from relay: malformed document in {section}")
    return ExportEnvelope.from_dict(payload)


class RelayClient:
    """Stateless request/response wrappers for the five relay operations.

    A relay reply of {"status": "error"} raises RelayError with the relay's
    message. A non-2xx status, a network failure, a timeout or an unreadable
    body raises TransportError; no parsed body is assumed in that case.
    """

    def __init__(self, config: SyncConfig) -> None:
        self._url = config.relay_url
        self._app = config.app_name
        self._timeout = aiohttp.ClientTimeout(total=config.request_timeout)
        self._session: aiohttp.ClientSession | None = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()

    async def _call(self, function: str, **fields: Any) -> dict[str, Any]:
        payload = {"function": function, "app": self._app, **fields}
        session = await self._get_session()
        try:
            async with session.post(self._url, json=payload) as resp:
                if not 200 <= resp.status < 300:
                    logger.warning("Relay %s returned HTTP %d", function, resp.status)
                    raise TransportError(f"HTTP error! status: {resp.status}")
                text = await resp.text()
        except (aiohttp.ClientError, OSError, asyncio.TimeoutError) as e:
            logger.warning("Relay unreachable during %s: %s", function, e)
            raise TransportError(str(e) or type(e).__name__) from e

        try:
            body = json.loads(text)
        except json.JSONDecodeError as e:
            logger.error("Relay %s returned a non-JSON body: %s", function, text[:100])
            raise TransportError(f"Invalid response from relay: {e}") from e
        if not isinstance(body, dict):
            raise TransportError("Invalid response from relay: expected a JSON object")

        if body.get("status") == "error":
            message = body.get("error") or "Unknown relay error"
            logger.info("Relay %s rejected: %s", function, message)
            raise RelayError(message)
        return body

    async def create(self, email: str) -> str:
        """Register intent to sync under `email`. The key is delivered out of band."""
        body = await self._call("create", email=email)
        return body.get("msg") or "Check your email for a verification code"

    async def pull(self, key: str) -> PullResult:
        """Fetch the remote snapshot for `key`."""
        body = await self._call("pull", key=key)
        if body.get("status") != "success":
            raise TransportError(f"Unexpected pull status: {body.get('status')!r}")
        data = body.get("data") or {}
        if not isinstance(data, dict):
            raise TransportError("Invalid response from relay: pull data is not an object")
        user_data = data.get("userData")
        email = user_data.get("email", "") if isinstance(user_data, dict) else ""
        result = PullResult(
            token=data.get("token") or key,
            account_email=email or "",
            account_type=data.get("keyType") or "",
            envelope=_parse_envelope(data.get("data")),
            timestamp=data.get("timestamp"),
        )
        logger.debug(
            "Pulled %d records (%d metadata docs) from relay",
            len(result.envelope.regular), len(result.envelope.local),
        )
        return result

    async def push(self, key: str, envelope: ExportEnvelope) -> None:
        """Overwrite the remote snapshot for `key` unconditionally."""
        body = await self._call("push", email="", key=key, data=envelope.to_dict())
        if body.get("status") != "success":
            raise TransportError(f"Unexpected push status: {body.get('status')!r}")
        logger.debug("Pushed %d records to relay", len(envelope.regular))

    async def timestamp(self, key: str) -> str | None:
        """Return the remote's last-write time (ISO 8601), or None if it sent none."""
        body = await self._call("timestamp", key=key)
        return body.get("timestamp") or None

    async def forgot(self, email: str) -> str:
        """Ask the relay to email every key registered to `email`."""
        body = await self._call("forgot", email=email)
        return body.get("msg") or "Check your email for your sync keys"
