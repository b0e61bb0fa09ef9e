import hashlib
import logging
import re
from datetime import datetime, timezone
from typing import Any, Iterable, Optional, Union

import httpx

from screenreader.models.schemas import (
    ENTERED_BY,
    NightscoutDeviceStatus,
    NightscoutEntry,
    NightscoutStatus,
    NightscoutTreatment,
)

logger = logging.getLogger(__name__)

TOKEN_ROLES = ("admin", "readable", "reader", "denied", "device", "food")
_SHA1_HEX = re.compile(r"^[0-9a-fA-F]{40}$")


class NightscoutError(Exception):
    """Raised when Nightscout interaction fails."""


def normalize_base_url(url: str) -> str:
    """Accepts the site root or the /api/v1 URL that people tend to paste."""
    normalized = url.strip().rstrip("/")
    if normalized.lower().endswith("/api/v1"):
        normalized = normalized[: -len("/api/v1")]
    return normalized


def is_access_token(secret: str) -> bool:
    """Access tokens look like `<role>-<hash>` and must be sent unhashed."""
    parts = secret.split("-")
    return len(parts) == 2 and parts[0].lower() in TOKEN_ROLES


def is_jwt(secret: str) -> bool:
    return len(secret) > 20 and secret.count(".") >= 2


def hash_api_secret(secret: str) -> str:
    # A 40 hex string is already a SHA1 of the secret
    if _SHA1_HEX.match(secret):
        return secret.lower()
    return hashlib.sha1(secret.encode("utf-8")).hexdigest()


def parse_nightscout_date(raw: Any) -> Optional[datetime]:
    """Nightscout stores dates as ISO strings or epoch milliseconds."""
    if raw is None:
        return None
    if isinstance(raw, (int, float)):
        return datetime.fromtimestamp(raw / 1000, tz=timezone.utc)
    text = str(raw).strip()
    if not text:
        return None
    if text.isdigit():
        return datetime.fromtimestamp(int(text) / 1000, tz=timezone.utc)
    try:
        dt = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        logger.warning(f"Unparseable Nightscout date: {text!r}")
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


TreatmentLike = Union[NightscoutTreatment, dict]


class NightscoutClient:
    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        api_secret: Optional[str] = None,
        timeout_seconds: int = 30,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = normalize_base_url(base_url)
        self.token = token.strip() if token else None
        self.api_secret = api_secret.strip() if api_secret else None
        self.timeout_seconds = timeout_seconds

        headers = self._auth_headers()
        headers["Accept"] = "application/json"

        params = {}
        # Access tokens go in the query string; Nightscout ignores them as API-SECRET
        if self.token and not is_jwt(self.token) and is_access_token(self.token):
            params["token"] = self.token

        self.client = client or httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout_seconds,
            headers=headers,
            params=params,
        )

    def _auth_headers(self) -> dict[str, str]:
        headers: dict[str, str] = {}

        if self.token:
            if is_jwt(self.token):
                headers["Authorization"] = f"Bearer {self.token}"
            elif not is_access_token(self.token):
                headers["API-SECRET"] = hash_api_secret(self.token)

        if self.api_secret:
            if is_access_token(self.api_secret):
                # Role tokens pasted into the secret field are sent as-is
                headers["API-SECRET"] = self.api_secret
            else:
                headers["API-SECRET"] = hash_api_secret(self.api_secret)

        return headers

    async def _handle_response(self, response: httpx.Response) -> Any:
        try:
            response.raise_for_status()
            if not response.content.strip():
                # Empty body is sometimes returned by Nightscout instead of []
                return []
            return response.json()
        except httpx.HTTPStatusError as exc:
            logger.error("Nightscout API error", extra={"status_code": exc.response.status_code, "body": exc.response.text})
            raise NightscoutError(f"Nightscout returned status {exc.response.status_code}") from exc
        except ValueError as exc:
            preview = response.text[:200]
            logger.error(f"Invalid JSON from Nightscout. Body: {preview!r}")
            raise NightscoutError(f"Nightscout returned invalid JSON (Body: {preview!r})") from exc

    async def _request(self, method: str, endpoint: str, **kwargs: Any) -> Any:
        try:
            response = await self.client.request(method, endpoint, **kwargs)
        except httpx.TimeoutException as exc:
            raise NightscoutError(f"Timeout connecting to Nightscout ({endpoint})") from exc
        except httpx.RequestError as exc:
            raise NightscoutError(f"Nightscout request failed ({endpoint}): {exc}") from exc
        return await self._handle_response(response)

    async def get_status(self) -> NightscoutStatus:
        endpoint_candidates = ["/api/v1/status.json", "/api/v1/status"]
        last_error: Optional[Exception] = None
        for endpoint in endpoint_candidates:
            try:
                data = await self._request("GET", endpoint)
                if not isinstance(data, dict):
                    raise NightscoutError(f"Expected dict for status, got {type(data).__name__}")
                return NightscoutStatus.model_validate(data)
            except NightscoutError as exc:
                last_error = exc
                logger.warning("Nightscout status endpoint failed", extra={"endpoint": endpoint, "error": str(exc)})
        raise NightscoutError(f"Unable to fetch Nightscout status: {last_error}")

    async def upload_entries(self, entries: Iterable[NightscoutEntry]) -> Any:
        payload = [e.model_dump(exclude_none=True) for e in entries]
        if not payload:
            return []
        result = await self._request("POST", "/api/v1/entries", json=payload)
        logger.info(f"Uploaded {len(payload)} entries to Nightscout")
        return result

    async def upload_device_status(self, status: NightscoutDeviceStatus) -> Any:
        return await self._request("POST", "/api/v1/devicestatus", json=status.model_dump(exclude_none=True))

    async def upload_treatments(self, treatments: Iterable[TreatmentLike]) -> Any:
        payload: list[dict] = []
        for t in treatments:
            item = t.to_payload() if isinstance(t, NightscoutTreatment) else dict(t)
            # Some Nightscout versions reject treatments without enteredBy
            if not item.get("enteredBy"):
                item["enteredBy"] = ENTERED_BY
            payload.append(item)
        if not payload:
            return []

        result = await self._request("POST", "/api/v1/treatments", json=payload)
        logger.info(f"Uploaded {len(payload)} treatments: {[p.get('eventType') for p in payload]}")
        if result == []:
            return {"status": "success", "uploaded_count": len(payload)}
        return result

    async def get_latest_treatment_time(self, event_type_regex: str) -> Optional[datetime]:
        """
        Time of the newest treatment whose eventType matches the regex
        ("Sensor" for SAGE, "Insulin" for IAGE), or None if there is none.
        """
        params = {"find[eventType][$regex]": event_type_regex, "count": 1}
        data = await self._request("GET", "/api/v1/treatments", params=params)
        if not isinstance(data, list) or not data:
            return None
        item = data[0]
        if not isinstance(item, dict):
            return None
        return parse_nightscout_date(item.get("created_at") or item.get("date"))

    async def aclose(self) -> None:
        await self.client.aclose()


def client_from_config(config) -> Optional[NightscoutClient]:
    """Client for a `NightscoutConfig`, or None when sync is off or no URL is set."""
    if not config.enabled or not config.base_url:
        return None
    return NightscoutClient(
        base_url=str(config.base_url),
        token=config.token,
        api_secret=config.api_secret,
        timeout_seconds=config.timeout_seconds,
    )
