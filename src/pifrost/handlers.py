"""Per-event orchestration of IP resolution, host diffs and record changes."""

from __future__ import annotations

from typing import Any

import structlog

from .changeset import Action, create_change_set
from .errors import AnnotationMissing, MultipleLoadBalancerIPs, RecordNotFound
from .hosts import diff, same_set, unique
from .reconciler import RecordReconciler
from .resolver import IPResolver, single_address
from .resources import Added, Deleted, ResourceEvent, ResourceKind, ResourceSnapshot, Updated


class ResourceHandler:
    """Keeps DNS records in line with one kind of resource.

    Works on ResourceSnapshot only; subclasses set the kind and the
    eligibility message.
    """

    kind: ResourceKind

    def __init__(
        self,
        reconciler: RecordReconciler,
        resolver: IPResolver,
        logger: Any = None,
    ) -> None:
        self.reconciler = reconciler
        self.resolver = resolver
        self._log = logger or structlog.get_logger(__name__)

    def _bind(self, resource: ResourceSnapshot) -> Any:
        return self._log.bind(
            kind=resource.kind.value, namespace=resource.namespace, name=resource.name
        )

    def handle(self, event: ResourceEvent) -> None:
        if isinstance(event, Added):
            self.on_added(event.resource)
        elif isinstance(event, Deleted):
            self.on_deleted(event.resource)
        elif isinstance(event, Updated):
            self.on_updated(event.old, event.new)
        else:
            raise TypeError(f"Unknown event {event!r}")

    def _gate(self, resource: ResourceSnapshot) -> bool:
        """Raise if not opted in; False if opted in but not eligible."""
        if not resource.managed:
            raise AnnotationMissing(
                f"{resource.kind.value} {resource.namespace}/{resource.name} is not annotated"
            )
        if not resource.eligible:
            self._ignore_ineligible(resource)
            return False
        return True

    def _ignore_ineligible(self, resource: ResourceSnapshot) -> None:
        self._bind(resource).warning("Resource is not eligible for DNS management, ignored")

    def _add(self, resource: ResourceSnapshot, host: str, ip: str) -> None:
        self.reconciler.add(create_change_set(ip, host, Action.ADD))
        self._bind(resource).info("Completed record creation", hostname=host, ip=ip)

    def _delete(self, resource: ResourceSnapshot, host: str, ip: str) -> None:
        self.reconciler.delete(create_change_set(ip, host, Action.DELETE))
        self._bind(resource).info("Completed record deletion", hostname=host, ip=ip)

    def _release(
        self, resource: ResourceSnapshot, ip: str, hosts: list[str] | None = None
    ) -> None:
        """Delete hostnames of a resource, all of them by default.

        Already absent counts as done.
        """
        for host in unique(resource.hostnames if hosts is None else hosts):
            try:
                self._delete(resource, host, ip)
            except RecordNotFound:
                self._bind(resource).info("Record already absent", hostname=host)

    def on_added(self, resource: ResourceSnapshot) -> None:
        """Publish every hostname at the resolved IP, stopping at the first failure."""
        if self._gate(resource):
            self._publish(resource)

    def _publish(self, resource: ResourceSnapshot) -> str:
        ip = self.resolver.resolve_ip(resource)
        for host in unique(resource.hostnames):
            self._add(resource, host, ip)
        return ip

    def on_deleted(self, resource: ResourceSnapshot) -> None:
        if not self._gate(resource):
            return
        self._release(resource, self.resolver.last_known_ip(resource))

    def on_updated(self, old: ResourceSnapshot, new: ResourceSnapshot) -> None:
        log = self._bind(new)

        if old.tracked and not new.tracked:
            self._release(old, self.resolver.last_known_ip(old))
            log.info("Resource no longer managed, records removed")
            return
        if not new.tracked:
            self._gate(new)
            return
        if not old.tracked:
            log.info("Resource became managed")
            self.on_added(new)
            return

        override = self.resolver.override
        if not override and not old.addresses:
            # Address was pending on the previous observation.
            new_ip = self._publish(new)
            self._release(old, new_ip, diff(old.hostnames, new.hostnames).removed)
            return

        new_ip = self.resolver.resolve_ip(new)
        if override:
            old_ip = override
        else:
            if len(old.addresses) != 1 or len(new.addresses) != 1:
                raise MultipleLoadBalancerIPs(
                    f"{new.kind.value} {new.namespace}/{new.name}: both observations "
                    "must carry exactly one load-balancer address"
                )
            old_ip = single_address(old)

        same_hosts = same_set(old.hostnames, new.hostnames)
        same_ip = bool(override) or old_ip == new_ip
        if same_hosts and same_ip:
            log.debug("Object updated but nothing to do")
            return

        added, removed, both = diff(old.hostnames, new.hostnames)

        for host in added:
            self._add(new, host, new_ip)
        for host in removed:
            self._delete(old, host, old_ip)

        if not same_ip:
            for host in unique(both):
                self._delete(old, host, old_ip)
                self._add(new, host, new_ip)
            log.info("Records moved to new ip", old_ip=old_ip, ip=new_ip)


class IngressHandler(ResourceHandler):
    """Ingress objects: one record per rule host."""

    kind = ResourceKind.INGRESS


class ServiceHandler(ResourceHandler):
    """LoadBalancer services: one record named by the domain annotation."""

    kind = ResourceKind.SERVICE

    def _ignore_ineligible(self, resource: ResourceSnapshot) -> None:
        self._bind(resource).warning("Service is not of type LoadBalancer. Ignored")
