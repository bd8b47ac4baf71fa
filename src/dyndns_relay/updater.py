"""
Dynamic DNS update orchestration.

This module turns the query parameters of an update request into a record
update: it validates the hostname and IP, resolves the zone and the record
through the provider API, and overwrites the record content.

Validation and resolution failures are returned as `UpdateResult` values
carrying an `ErrorKind`; nothing here raises to the caller.
"""

from __future__ import annotations

import ipaddress
import logging
import time
from enum import StrEnum
from typing import TYPE_CHECKING, Protocol, TypeVar

from pydantic import ValidationError

from dyndns_relay.cloudflare import ProviderNetworkError
from dyndns_relay.models import (
    APIResponse,
    DNSRecord,
    ErrorKind,
    UpdateRequest,
    UpdateResult,
    Zone,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping
    from typing import Any, Final


HOSTNAME_PARAM: Final[str] = "hostname"
MY_IP_PARAM: Final[str] = "myip"


logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", Zone, DNSRecord)


class ZoneSelection(StrEnum):
    """
    Policy for picking a zone when several zones cover the hostname.

    Attributes
    ----------
    LONGEST : str
        Prefer the most specific (longest) zone name.
    FIRST : str
        Take the first match in the order returned by the provider.
    """

    LONGEST = "longest"
    FIRST = "first"


class DNSClient(Protocol):
    """The provider calls used by `DNSUpdater`."""

    async def list_zones(self) -> dict[str, Any]: ...

    async def list_dns_records(self, zone_id: str) -> dict[str, Any]: ...

    async def update_dns_record(
        self,
        zone_id: str,
        record_id: str,
        *,
        record_type: str,
        name: str,
        content: str,
    ) -> dict[str, Any]: ...


def is_valid_ipv4(value: str | None) -> bool:
    """
    Check that `value` is a dotted-quad IPv4 address.

    Four decimal groups in 0-255 without leading zeros are required, so
    IPv6 addresses and partial addresses are rejected.

    Parameters
    ----------
    value : str | None
        The candidate address.

    Returns
    -------
    bool
        True if the address is valid.
    """
    if not value:
        return False
    try:
        ipaddress.IPv4Address(value)
    except ValueError:
        return False
    return True


def select_zone(
    zones: Iterable[Zone],
    hostname: str,
    selection: ZoneSelection = ZoneSelection.LONGEST,
) -> Zone | None:
    """
    Pick the zone a hostname belongs to.

    Only active, unpaused zones covering the hostname are candidates.

    Parameters
    ----------
    zones : Iterable[Zone]
        Zones in provider order.
    hostname : str
        Fully qualified hostname.
    selection : ZoneSelection, optional
        Tie-break policy when several zones match.

    Returns
    -------
    Zone | None
        The selected zone, or None if no zone matches.
    """
    candidates = [zone for zone in zones if zone.is_active and zone.covers(hostname)]
    if not candidates:
        return None
    if selection == ZoneSelection.FIRST:
        return candidates[0]
    # max() keeps the first of equally long names
    return max(candidates, key=lambda zone: len(zone.name))


def select_record(records: Iterable[DNSRecord], hostname: str) -> DNSRecord | None:
    """Return the first record named exactly `hostname`, or None."""
    return next((record for record in records if record.name == hostname), None)


class DNSUpdater:
    """
    Drives a single dynamic DNS update against the provider.

    Parameters
    ----------
    client : DNSClient
        Provider client (normally a `CloudFlareClient`).
    zone_selection : ZoneSelection, optional
        Tie-break policy for overlapping zones.
    skip_unchanged : bool, optional
        Skip the update call when the record already holds the IP.
    """

    def __init__(
        self,
        client: DNSClient,
        *,
        zone_selection: ZoneSelection = ZoneSelection.LONGEST,
        skip_unchanged: bool = False,
    ) -> None:
        self.client = client
        self.zone_selection = zone_selection
        self.skip_unchanged = skip_unchanged

    async def handle_update(
        self,
        query: Mapping[str, str],
        caller_ip: str | None,
    ) -> UpdateResult:
        """
        Handle an update request.

        Parameters
        ----------
        query : Mapping[str, str]
            Query parameters of the request.
        caller_ip : str | None
            IP of the caller as observed by the edge/proxy, if known.

        Returns
        -------
        UpdateResult
            Success, or a failure with its error kind.
        """
        start_time = time.monotonic()
        result = await self._handle_update(query, caller_ip)
        duration = time.monotonic() - start_time

        if result.success:
            logger.info(
                "[response] status=success message=%s duration=%.2fs",
                result.message,
                duration,
            )
        else:
            logger.warning(
                "[response] status=error kind=%s message=%s duration=%.2fs",
                result.kind,
                result.message,
                duration,
            )
        return result

    async def _handle_update(
        self,
        query: Mapping[str, str],
        caller_ip: str | None,
    ) -> UpdateResult:
        hostname = query.get(HOSTNAME_PARAM)
        if not hostname:
            return UpdateResult.failure(
                ErrorKind.BAD_REQUEST,
                "Missing required hostname param",
            )

        desired_ip = query.get(MY_IP_PARAM)
        if desired_ip is None and not caller_ip:
            return UpdateResult.failure(
                ErrorKind.BAD_REQUEST,
                "Could not determine the IP address to set. "
                "You can pass the desired IP via the myip param.",
            )

        request = UpdateRequest(
            hostname=hostname,
            desired_ip=desired_ip,
            caller_ip=caller_ip or None,
        )

        logger.info("[request] hostname=%s ip=%s", request.hostname, request.ip)

        if not is_valid_ipv4(request.ip):
            return UpdateResult.failure(ErrorKind.BAD_REQUEST, "Invalid IP")

        try:
            return await self._update(request)
        except ProviderNetworkError as e:
            logger.error("[updater] Network request failed: '%s'", e)  # noqa: TRY400
            return UpdateResult.failure(
                ErrorKind.NETWORK_ERROR,
                "Unable to reach DNS provider",
                detail=str(e),
            )

    async def _update(self, request: UpdateRequest) -> UpdateResult:
        # Step 1: Resolve zone
        response = _parse_response(await self.client.list_zones())
        zones = _parse_items(response, Zone)
        if zones is None:
            return _provider_failure(
                "Unable to retrieve zones from DNS provider",
                response,
            )

        zone = select_zone(zones, request.hostname, self.zone_selection)
        if zone is None:
            return UpdateResult.failure(
                ErrorKind.PROVIDER_ERROR,
                "Unable to find zone for hostname",
            )

        logger.debug("[updater] Zone ID for %s: %s", request.hostname, zone.id)

        # Step 2: Resolve record
        response = _parse_response(await self.client.list_dns_records(zone.id))
        records = _parse_items(response, DNSRecord)
        if records is None:
            return _provider_failure(
                "Unable to retrieve DNS records from DNS provider",
                response,
                zone_id=zone.id,
            )

        record = select_record(records, request.hostname)
        if record is None:
            return UpdateResult.failure(
                ErrorKind.PROVIDER_ERROR,
                "DNS record does not exist for the given hostname",
                zone_id=zone.id,
            )

        logger.debug("[updater] Record ID for %s: %s", request.hostname, record.id)

        if self.skip_unchanged and record.content == request.ip:
            return UpdateResult.ok(
                "DNS record unchanged",
                zone_id=zone.id,
                record_id=record.id,
            )

        # Step 3: Update record
        response = _parse_response(
            await self.client.update_dns_record(
                zone.id,
                record.id,
                record_type=record.type,
                name=record.name,
                content=request.ip,
            ),
        )
        if response is None or not response.success:
            return _provider_failure(
                "Unable to set DNS record for given hostname",
                response,
                zone_id=zone.id,
            )

        return UpdateResult.ok(
            zone_id=zone.id,
            record_id=record.id,
            previous_value=record.content,
        )


def _parse_response(body: dict[str, Any]) -> APIResponse | None:
    """Validate the provider response envelope, or None if malformed."""
    try:
        return APIResponse.model_validate(body)
    except ValidationError as e:
        logger.error("[updater] Unexpected provider response: %s", e)  # noqa: TRY400
        return None


def _parse_items(
    response: APIResponse | None,
    model: type[ModelT],
) -> list[ModelT] | None:
    """
    Parse the `result` list of a successful response.

    Returns None if the response is missing, unsuccessful, or has no result
    list. Items that do not match `model` are skipped.
    """
    if response is None or not response.success:
        return None
    if not isinstance(response.result, list):
        logger.error("[updater] Expected a result list, got: %r", response.result)
        return None

    items: list[ModelT] = []
    for item in response.result:
        try:
            items.append(model.model_validate(item))
        except ValidationError as e:
            logger.warning(
                "[updater] Skipping malformed %s entry: %s",
                model.__name__,
                e,
            )
    return items


def _provider_failure(
    message: str,
    response: APIResponse | None,
    zone_id: str | None = None,
) -> UpdateResult:
    """Build a provider failure and log the provider's first error."""
    detail = response.first_error() if response is not None else "Malformed response"
    logger.error("[updater] %s: '%s'", message, detail)
    return UpdateResult.failure(
        ErrorKind.PROVIDER_ERROR,
        message,
        detail=detail,
        zone_id=zone_id,
    )
