"""Pi-hole custom DNS API client."""

from __future__ import annotations

import json
from typing import Any

import httpx
import structlog

from .changeset import ChangeSet, HostRecord, is_ip_address, is_valid_hostname
from .config import PiholeConfig
from .errors import ConnectivityError, DecodeError, InvalidHostname, ProviderRejected, Unreachable
from .retry import retry_with_backoff

logger = structlog.get_logger()

API_PATH = "/admin/api.php"
PROBE_ATTEMPTS = 8


def _first_json_value(body: str) -> Any:
    """Decode the first JSON value of a body and ignore whatever follows it.

    The API appends a second, unrelated JSON value to every response,
    e.g. {"success":true,"message":""}{"FTLnotrunning":true}.
    """
    text = body.lstrip()
    if not text:
        raise DecodeError("Empty response body")
    try:
        value, _ = json.JSONDecoder().raw_decode(text)
    except json.JSONDecodeError as e:
        raise DecodeError(f"Error decoding response: {e}") from e
    return value


def decode_records(body: str) -> list[HostRecord]:
    """Decode a get response: {"data": [[hostname, ip], ...]}."""
    payload = _first_json_value(body)
    if not isinstance(payload, dict):
        raise DecodeError(f"Expected an object, got {type(payload).__name__}")

    records: list[HostRecord] = []
    for entry in payload.get("data") or []:
        if not isinstance(entry, list) or len(entry) < 2:
            raise DecodeError(f"Malformed record entry: {entry!r}")
        records.append(HostRecord(hostname=str(entry[0]), ip=str(entry[1])))

    logger.debug("Decoded records", count=len(records))
    return records


def decode_success(body: str) -> tuple[bool, str]:
    """Decode a mutation response: {"success": bool, "message": str}."""
    payload = _first_json_value(body)
    if not isinstance(payload, dict):
        raise DecodeError(f"Expected an object, got {type(payload).__name__}")
    return bool(payload.get("success", False)), str(payload.get("message") or "")


def _validate_host(host: str) -> None:
    name, _, port = host.partition(":")
    if port and not port.isdigit():
        raise InvalidHostname(f"Could not parse pi-hole host [{host}]")
    if not (is_valid_hostname(name) or is_ip_address(name)):
        raise InvalidHostname(f"Could not parse pi-hole host [{host}]")


class PiholeClient:
    """Client for the Pi-hole custom DNS API.

    The API answers 200 even when it refuses a change, so success is read from
    the decoded body only.
    """

    def __init__(self, config: PiholeConfig) -> None:
        _validate_host(config.host)
        self.config = config
        scheme = "https" if config.secure else "http"
        self.base_url = f"{scheme}://{config.host}{API_PATH}"
        self._client = httpx.Client(timeout=config.timeout)

        logger.info("Creating DNS provider", host=config.host, insecure=config.insecure)

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self) -> PiholeClient:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def _request(self, method: str, params: dict[str, str]) -> str:
        query = {"customdns": "", "auth": self.config.token, **params}
        logger.debug("Pi-hole request", method=method, url=self.base_url, **params)
        try:
            response = self._client.request(method, self.base_url, params=query)
        except httpx.TransportError as e:
            raise ConnectivityError(f"Error sending request to pi-hole: {e}") from e
        return response.text

    def list_records(self) -> list[HostRecord]:
        """Get every custom DNS record currently held by Pi-hole."""
        body = self._request("GET", {"action": "get"})
        return decode_records(body)

    def apply_change(self, change: ChangeSet) -> None:
        """Send one add or delete to Pi-hole.

        Raises:
            ProviderRejected: Pi-hole reported success=false
            ConnectivityError: transport failure
            DecodeError: response body was not JSON
        """
        body = self._request(
            "POST",
            {"action": change.action.value, "ip": change.ip, "domain": change.hostname},
        )
        success, message = decode_success(body)
        if not success:
            raise ProviderRejected(message)

    def health_check(self) -> bool:
        """Check if Pi-hole answers a record listing."""
        try:
            self.list_records()
            return True
        except Exception as e:
            logger.error("Pi-hole health check failed", error=str(e))
            return False


def wait_until_reachable(client: PiholeClient, attempts: int = PROBE_ATTEMPTS) -> None:
    """Block until Pi-hole answers a listing, backing off 2s, 4s, 8s, ...

    Raises:
        Unreachable: no successful listing within `attempts` tries
    """

    @retry_with_backoff(
        max_attempts=attempts,
        retryable_exceptions=(ConnectivityError, DecodeError),
    )
    def probe() -> None:
        logger.info("Attempting to reach pi-hole", host=client.config.host)
        client.list_records()

    try:
        probe()
    except (ConnectivityError, DecodeError) as e:
        raise Unreachable(f"Failed to connect to pi-hole after {attempts} attempts: {e}") from e

    logger.info("Connected to pi-hole", host=client.config.host)
