"""
Data models for DynDNS Relay.

This module defines the transient data structures used while handling an
update request: the provider entities (zones and DNS records), the parsed
update request, and the result type that carries an explicit error kind.
"""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field, model_validator
from pydantic_core import PydanticCustomError
from starlette import status as st_status

if TYPE_CHECKING:
    from typing import Self


class ErrorKind(StrEnum):
    """
    Failure kinds of an update request.

    Attributes
    ----------
    NOT_FOUND : str
        Unknown request path.
    FORBIDDEN : str
        Missing or invalid shared-secret code.
    BAD_REQUEST : str
        Missing or invalid hostname or IP.
    PROVIDER_ERROR : str
        Zone/record not found, or the provider reported a failure.
    NETWORK_ERROR : str
        The provider API could not be reached.
    """

    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    BAD_REQUEST = "bad_request"
    PROVIDER_ERROR = "provider_error"
    NETWORK_ERROR = "network_error"

    @property
    def status_code(self) -> int:
        """HTTP status code for this error kind."""
        return _ERROR_STATUS[self]


_ERROR_STATUS: dict[ErrorKind, int] = {
    ErrorKind.NOT_FOUND: st_status.HTTP_404_NOT_FOUND,
    ErrorKind.FORBIDDEN: st_status.HTTP_403_FORBIDDEN,
    ErrorKind.BAD_REQUEST: st_status.HTTP_400_BAD_REQUEST,
    ErrorKind.PROVIDER_ERROR: st_status.HTTP_502_BAD_GATEWAY,
    ErrorKind.NETWORK_ERROR: st_status.HTTP_502_BAD_GATEWAY,
}


class Zone(BaseModel):
    """
    A DNS zone owned by the provider account.

    Attributes
    ----------
    id : str
        Provider zone identifier.
    name : str
        Zone apex domain (e.g. "example.com").
    status : str
        Provider zone status ("active", "pending", ...).
    paused : bool
        Whether the zone is paused on the provider.
    """

    id: str
    name: str
    status: str = ""
    paused: bool = False

    @property
    def is_active(self) -> bool:
        """Whether the zone can be edited."""
        return self.status == "active" and not self.paused

    def covers(self, hostname: str) -> bool:
        """
        Check whether `hostname` belongs to this zone.

        The zone name must equal the hostname or be a suffix of it on a
        label boundary, so "example.com" covers "sub.example.com" but not
        "badexample.com".

        Parameters
        ----------
        hostname : str
            Fully qualified hostname.

        Returns
        -------
        bool
            True if the hostname is inside this zone.
        """
        if not self.name:
            return False
        return hostname == self.name or hostname.endswith(f".{self.name}")


class DNSRecord(BaseModel):
    """
    A single DNS record inside a zone.

    Attributes
    ----------
    id : str
        Provider record identifier.
    name : str
        Fully qualified record name.
    type : str
        Record type (A, CNAME, ...).
    content : str | None
        Current record content.
    zone_id : str | None
        Back-reference to the owning zone.
    """

    id: str
    name: str
    type: str
    content: str | None = None
    zone_id: str | None = None


class APIError(BaseModel):
    """An entry of the provider's `errors` list."""

    code: int | str | None = None
    message: str = "Unknown error"


class APIResponse(BaseModel):
    """
    Envelope of every provider API response.

    Attributes
    ----------
    success : bool
        Whether the provider reports the call as successful.
    errors : list[APIError]
        Errors reported by the provider.
    result : Any
        Call-specific payload.
    """

    success: bool = False
    errors: list[APIError] = Field(default_factory=list)
    result: Any = None

    def first_error(self) -> str:
        """Return the first reported error message, for diagnostics."""
        if self.errors:
            return self.errors[0].message
        return "Unknown error"


class UpdateRequest(BaseModel):
    """
    A validated dynamic DNS update request.

    Attributes
    ----------
    hostname : str
        Fully qualified hostname to update.
    desired_ip : str | None
        IP passed explicitly via the `myip` parameter.
    caller_ip : str | None
        IP of the caller as observed by the edge/proxy.
    """

    hostname: str = Field(..., min_length=1)
    desired_ip: str | None = None
    caller_ip: str | None = None

    @model_validator(mode="after")
    def check_ip_source(self) -> Self:
        """
        Require at least one IP source.

        Raises
        ------
        PydanticCustomError
            If neither `desired_ip` nor `caller_ip` is set.
        """
        if self.desired_ip is None and self.caller_ip is None:
            err_type = "missing_ip_source"
            raise PydanticCustomError(
                err_type,
                "Either desired_ip or caller_ip must be set",
            )
        return self

    @property
    def ip(self) -> str:
        """The IP to apply: the explicit one if given, else the caller's."""
        if self.desired_ip is not None:
            return self.desired_ip
        return self.caller_ip  # type: ignore[return-value]


class UpdateResult:
    """
    Result of an update request.

    Attributes
    ----------
    success : bool
        Whether the record was updated.
    kind : ErrorKind | None
        Failure kind (None on success).
    message : str
        Human-readable message, safe to return to the caller.
    detail : str | None
        Operator-facing diagnostics (e.g. the provider's error). Logged only.
    zone_id : str | None
        The resolved zone ID.
    record_id : str | None
        The resolved record ID.
    previous_value : str | None
        The record content before the update.
    """

    def __init__(
        self,
        *,
        success: bool,
        message: str,
        kind: ErrorKind | None = None,
        detail: str | None = None,
        zone_id: str | None = None,
        record_id: str | None = None,
        previous_value: str | None = None,
    ) -> None:
        self.success = success
        self.message = message
        self.kind = kind
        self.detail = detail
        self.zone_id = zone_id
        self.record_id = record_id
        self.previous_value = previous_value

    @classmethod
    def ok(
        cls,
        message: str = "OK",
        *,
        zone_id: str | None = None,
        record_id: str | None = None,
        previous_value: str | None = None,
    ) -> UpdateResult:
        """Create a successful result."""
        return cls(
            success=True,
            message=message,
            zone_id=zone_id,
            record_id=record_id,
            previous_value=previous_value,
        )

    @classmethod
    def failure(
        cls,
        kind: ErrorKind,
        message: str,
        *,
        detail: str | None = None,
        zone_id: str | None = None,
    ) -> UpdateResult:
        """Create a failed result of the given kind."""
        return cls(
            success=False,
            message=message,
            kind=kind,
            detail=detail,
            zone_id=zone_id,
        )

    @property
    def status_code(self) -> int:
        """HTTP status code to answer with."""
        if self.kind is None:
            return st_status.HTTP_200_OK
        return self.kind.status_code

    def __repr__(self) -> str:
        return (
            f"UpdateResult(success={self.success!r}, kind={self.kind!r}, "
            f"message={self.message!r})"
        )
