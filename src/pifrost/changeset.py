"""Host records and validated change sets."""

from __future__ import annotations

import ipaddress
import re
from dataclasses import dataclass
from enum import Enum

import structlog

from .errors import InvalidAction, InvalidAddress, InvalidHostname

logger = structlog.get_logger(__name__)

_LABEL = r"[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?"
HOSTNAME_RE = re.compile(rf"^{_LABEL}(?:\.{_LABEL})*$")


class Action(str, Enum):
    """Mutation kinds accepted by the DNS backend."""

    ADD = "add"
    DELETE = "delete"


@dataclass(frozen=True)
class HostRecord:
    """A single hostname -> IP mapping held by the DNS backend."""

    hostname: str
    ip: str


@dataclass(frozen=True)
class ChangeSet:
    """One validated mutation of a host record."""

    record: HostRecord
    action: Action

    @property
    def hostname(self) -> str:
        return self.record.hostname

    @property
    def ip(self) -> str:
        return self.record.ip


def is_ip_address(value: str) -> bool:
    try:
        ipaddress.ip_address(value)
    except ValueError:
        return False
    return True


def is_valid_hostname(value: str) -> bool:
    """Check RFC-1123 hostname grammar.

    IP literals are rejected: a dotted quad matches the label grammar, so the
    last label must not be all digits.
    """
    if not value or len(value) > 253:
        return False
    if not HOSTNAME_RE.match(value):
        return False
    return not value.rsplit(".", 1)[-1].isdigit()


def create_change_set(ip: str, hostname: str, action: Action | str) -> ChangeSet:
    """Validate the fields and build a change set.

    Raises:
        InvalidAddress: ip is not an IPv4/IPv6 literal
        InvalidHostname: hostname is not an RFC-1123 hostname
        InvalidAction: action is not add or delete
    """
    if not is_ip_address(ip):
        raise InvalidAddress(f"Could not parse IP [{ip}]")

    if not is_valid_hostname(hostname):
        raise InvalidHostname(f"Could not parse change set hostname [{hostname}]")

    try:
        kind = Action(action)
    except ValueError as e:
        raise InvalidAction(f"Change set action must be add or delete, got [{action}]") from e

    logger.info("Creating change set", ip=ip, hostname=hostname, action=kind.value)
    return ChangeSet(record=HostRecord(hostname=hostname, ip=ip), action=kind)
