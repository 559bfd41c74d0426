"""Resolve the externally visible IP of a cluster resource."""

from __future__ import annotations

from typing import Any, Protocol

import structlog

from .errors import ConnectivityError, MultipleLoadBalancerIPs, NoLoadBalancerIP
from .resources import ResourceKind, ResourceSnapshot
from .retry import retry_with_backoff

INGRESS_POLL_ATTEMPTS = 8
SERVICE_POLL_ATTEMPTS = 10


class ResourceReader(Protocol):
    def read(self, kind: ResourceKind, namespace: str, name: str) -> ResourceSnapshot: ...


class _Pending(Exception):
    """Load-balancer status still empty."""


def single_address(resource: ResourceSnapshot) -> str:
    """Return the one load-balancer IP of a snapshot.

    Raises:
        MultipleLoadBalancerIPs: more than one status entry
        NoLoadBalancerIP: no entry, or an entry without an IP
    """
    if len(resource.addresses) > 1:
        raise MultipleLoadBalancerIPs(
            f"{resource.kind.value} {resource.namespace}/{resource.name} has "
            f"{len(resource.addresses)} load-balancer addresses, only one is supported"
        )
    if not resource.addresses or not resource.addresses[0]:
        raise NoLoadBalancerIP(
            f"{resource.kind.value} {resource.namespace}/{resource.name} "
            "does not have a load-balancer IP"
        )
    return resource.addresses[0]


class IPResolver:
    """Polls a resource until its load-balancer status carries an address.

    When `override` is set no polling happens and the override is returned.
    """

    def __init__(
        self,
        reader: ResourceReader,
        attempts: int,
        override: str | None = None,
        logger: Any = None,
    ) -> None:
        self.reader = reader
        self.attempts = attempts
        self.override = override
        self._log = logger or structlog.get_logger(__name__)

    def resolve_ip(self, resource: ResourceSnapshot) -> str:
        """Re-fetch the resource with 2s, 4s, 8s, ... backoff until it has an IP."""
        if self.override:
            return self.override

        log = self._log.bind(
            kind=resource.kind.value, namespace=resource.namespace, name=resource.name
        )

        @retry_with_backoff(max_attempts=self.attempts, retryable_exceptions=(_Pending,))
        def poll() -> ResourceSnapshot:
            try:
                live = self.reader.read(resource.kind, resource.namespace, resource.name)
            except Exception as e:
                raise ConnectivityError(f"Failed to read {resource.kind.value}: {e}") from e
            if not live.addresses:
                log.debug("Load-balancer address not assigned yet")
                raise _Pending()
            return live

        try:
            live = poll()
        except _Pending:
            raise NoLoadBalancerIP(
                f"{resource.kind.value} {resource.namespace}/{resource.name} "
                f"did not get a load-balancer IP after {self.attempts} attempts"
            ) from None

        ip = single_address(live)
        log.debug("Resolved load-balancer IP", ip=ip)
        return ip

    def last_known_ip(self, resource: ResourceSnapshot) -> str:
        """IP carried by the snapshot itself, for objects that no longer exist."""
        if self.override:
            return self.override
        return single_address(resource)
