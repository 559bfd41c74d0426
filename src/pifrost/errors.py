"""Exception hierarchy shared by the DNS client, reconciler and handlers."""

from __future__ import annotations


class PifrostError(Exception):
    """Base class for all pifrost errors."""


class ValidationError(PifrostError):
    """A change set could not be built from the given fields."""


class InvalidAddress(ValidationError):
    """Value is not an IPv4 or IPv6 literal."""


class InvalidHostname(ValidationError):
    """Value is not an RFC-1123 hostname."""


class InvalidAction(ValidationError):
    """Change set action is neither add nor delete."""


class ConnectivityError(PifrostError):
    """Transport-level failure talking to the DNS backend or the cluster."""


class DecodeError(PifrostError):
    """DNS backend returned a body that could not be decoded."""


class ProviderRejected(PifrostError):
    """DNS backend reported success=false for a mutation."""

    def __init__(self, message: str) -> None:
        super().__init__(f"Provider rejected change: {message}")
        self.message = message


class RecordNotFound(PifrostError):
    """Delete targeted a hostname the backend does not hold."""

    def __init__(self, hostname: str) -> None:
        super().__init__(f"Record does not exist: {hostname}")
        self.hostname = hostname


class Unreachable(PifrostError):
    """DNS backend did not answer within the probe budget."""


class MultipleLoadBalancerIPs(PifrostError):
    """Resource does not carry exactly one load-balancer address."""


class NoLoadBalancerIP(PifrostError):
    """Resource never got a load-balancer address."""


class AnnotationMissing(PifrostError):
    """Resource is not opted in to DNS management."""
