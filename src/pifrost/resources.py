"""Kind-neutral snapshots of Ingress and Service objects."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

INGRESS_ANNOTATION = "pifrost.tolson.io/ingress"
SERVICE_ANNOTATION = "pifrost.tolson.io/domain"
LOAD_BALANCER = "LoadBalancer"


class ResourceKind(str, Enum):
    INGRESS = "ingress"
    SERVICE = "service"


@dataclass(frozen=True)
class ResourceSnapshot:
    """An Ingress or Service as observed at one point in time.

    addresses holds the load-balancer status entries in order; an entry that
    only carries a hostname shows up as an empty string.
    """

    kind: ResourceKind
    name: str
    namespace: str
    hostnames: tuple[str, ...] = ()
    managed: bool = False
    eligible: bool = True
    addresses: tuple[str, ...] = ()

    @property
    def key(self) -> tuple[str, str]:
        return (self.namespace, self.name)

    @property
    def tracked(self) -> bool:
        return self.managed and self.eligible


def _annotations(obj: Any) -> dict[str, str]:
    return (obj.metadata.annotations if obj.metadata else None) or {}


def _lb_addresses(obj: Any) -> tuple[str, ...]:
    status = obj.status
    lb = status.load_balancer if status else None
    entries = (lb.ingress if lb else None) or []
    return tuple(entry.ip or "" for entry in entries)


def has_ingress_annotation(annotations: dict[str, str]) -> bool:
    return annotations.get(INGRESS_ANNOTATION) == "true"


def service_hostname(annotations: dict[str, str]) -> str | None:
    return annotations.get(SERVICE_ANNOTATION)


def snapshot_from_ingress(ingress: Any, manage_all: bool = False) -> ResourceSnapshot:
    """Build a snapshot from a V1Ingress."""
    rules = (ingress.spec.rules if ingress.spec else None) or []
    return ResourceSnapshot(
        kind=ResourceKind.INGRESS,
        name=ingress.metadata.name,
        namespace=ingress.metadata.namespace,
        hostnames=tuple(rule.host for rule in rules if rule.host),
        managed=manage_all or has_ingress_annotation(_annotations(ingress)),
        addresses=_lb_addresses(ingress),
    )


def snapshot_from_service(service: Any) -> ResourceSnapshot:
    """Build a snapshot from a V1Service. The annotation value is the hostname."""
    hostname = service_hostname(_annotations(service))
    service_type = service.spec.type if service.spec else None
    return ResourceSnapshot(
        kind=ResourceKind.SERVICE,
        name=service.metadata.name,
        namespace=service.metadata.namespace,
        hostnames=(hostname,) if hostname else (),
        managed=hostname is not None,
        eligible=service_type == LOAD_BALANCER,
        addresses=_lb_addresses(service),
    )


@dataclass(frozen=True)
class Added:
    resource: ResourceSnapshot


@dataclass(frozen=True)
class Deleted:
    resource: ResourceSnapshot


@dataclass(frozen=True)
class Updated:
    old: ResourceSnapshot
    new: ResourceSnapshot


ResourceEvent = Added | Deleted | Updated
