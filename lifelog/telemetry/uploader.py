"""Ship formatted hourly records to the backend in a single POST.

The backend answers 2xx even for some business failures, wrapping the real
outcome in a ``{"code": ..., "msg": ...}`` envelope.  Success codes are
``"A0000"`` / ``0`` and success messages ``"succ"`` / ``"success"``; anything
else in a 2xx envelope is treated as a failed upload.  A body without an
envelope (or without JSON at all) counts as success.

Failed uploads are not retried; the caller decides whether to run again.
"""

from __future__ import annotations

import logging
from typing import Any, Sequence

import httpx

from lifelog.config import Settings, get_settings
from lifelog.models.telemetry import HourlyRecord, UploadPayload
from lifelog.telemetry.errors import UploadError

logger = logging.getLogger("lifelog.telemetry.uploader")

SAVE_PATH = "/health-data/save"

_SUCCESS_CODES = ("A0000", 0)
_SUCCESS_MESSAGES = ("succ", "success")


class Uploader:
    """POST ``{uid, data}`` to ``<backend_url>/health-data/save``.

    Usage::

        uploader = Uploader()
        await uploader.upload("user-123", records)
    """

    def __init__(
        self,
        backend_url: str | None = None,
        api_token: str | None = None,
        timeout_seconds: float | None = None,
        http_client: httpx.AsyncClient | None = None,
        settings: Settings | None = None,
    ) -> None:
        """Initialize the uploader.

        Args:
            backend_url:     Base URL of the backend.  Defaults to ``Settings.backend_url``.
            api_token:       Bearer token for the Authorization header, if any.
            timeout_seconds: Request timeout.  Defaults to ``Settings.upload_timeout_seconds``.
            http_client:     Optional pre-configured httpx client (for testing).
            settings:        Settings override; uses ``get_settings()`` otherwise.
        """
        settings = settings or get_settings()
        self._backend_url = (backend_url or settings.backend_url).rstrip("/")
        self._api_token = api_token if api_token is not None else settings.api_token
        self._timeout = (
            timeout_seconds if timeout_seconds is not None else settings.upload_timeout_seconds
        )
        self._http_client = http_client

    @property
    def url(self) -> str:
        return f"{self._backend_url}{SAVE_PATH}"

    def _build_headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self._api_token:
            headers["Authorization"] = f"Bearer {self._api_token}"
        return headers

    def build_payload(self, uid: str, records: Sequence[HourlyRecord]) -> dict[str, Any]:
        """Serialize the request body using the backend's field names."""
        return UploadPayload(uid=uid, data=list(records)).to_wire()

    async def upload(self, uid: str, records: Sequence[HourlyRecord]) -> dict[str, Any] | None:
        """Send all records in one request.

        Returns:
            The decoded JSON response body, or None if the body was not JSON.

        Raises:
            UploadError: On transport failure, a non-2xx status, or a backend
                         business error inside a 2xx response.
        """
        body = self.build_payload(uid, records)
        headers = self._build_headers()

        logger.info("Uploading %d hourly records to %s", len(records), self.url)
        try:
            if self._http_client:
                response = await self._http_client.post(
                    self.url, json=body, headers=headers, timeout=self._timeout
                )
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.post(self.url, json=body, headers=headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            raise UploadError(
                f"Backend returned HTTP {status}", status_code=status
            ) from exc
        except httpx.TimeoutException as exc:
            raise UploadError(f"Upload timed out after {self._timeout:g}s") from exc
        except httpx.HTTPError as exc:
            raise UploadError(f"Upload failed: {exc}") from exc

        try:
            payload = response.json()
        except ValueError:
            logger.debug("Upload response was not JSON; treating as success")
            return None

        self._check_envelope(payload, response.status_code)
        logger.info("Upload accepted (HTTP %d)", response.status_code)
        return payload

    @staticmethod
    def _check_envelope(payload: Any, status_code: int) -> None:
        if not isinstance(payload, dict):
            return
        if "code" not in payload and "msg" not in payload:
            return
        code = payload.get("code")
        message = payload.get("msg")
        if code in _SUCCESS_CODES or (
            isinstance(message, str) and message.lower() in _SUCCESS_MESSAGES
        ):
            return
        raise UploadError(
            f"Backend rejected upload: {message or 'unknown error'} (code {code})",
            status_code=status_code,
            backend_code=code,
        )
