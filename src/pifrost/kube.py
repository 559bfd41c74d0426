"""Kubernetes access: point reads and lifecycle event streams."""

from __future__ import annotations

import threading
from collections.abc import Callable, Generator, Iterator
from pathlib import Path
from typing import Any

import structlog
from kubernetes import client, config, watch
from kubernetes.client.rest import ApiException

from .resources import (
    Added,
    Deleted,
    ResourceEvent,
    ResourceKind,
    ResourceSnapshot,
    Updated,
    snapshot_from_ingress,
    snapshot_from_service,
)
from .retry import backoff_delay

logger = structlog.get_logger(__name__)

# Server-side watch timeout; the stream is reopened afterwards.
WATCH_TIMEOUT_SECONDS = 300
HTTP_GONE = 410
ACCESS_DENIED = (401, 403)
WATCH_RETRY_MAX_DELAY = 30.0


def load_kube_config(kubeconfig: Path | None = None) -> None:
    """Load an explicit kubeconfig file, else the in-cluster service account."""
    if kubeconfig is not None:
        logger.info("Loading kubeconfig", path=str(kubeconfig))
        config.load_kube_config(config_file=str(kubeconfig))
    else:
        logger.info("Loading in-cluster kubernetes config")
        config.load_incluster_config()


class KubernetesResources:
    """Reads Ingress and Service objects and turns watch streams into events.

    The last snapshot of every object is remembered per kind so that a
    MODIFIED notification can be delivered as Updated(old, new).
    """

    def __init__(
        self,
        manage_all: bool = False,
        api_client: client.ApiClient | None = None,
    ) -> None:
        self.manage_all = manage_all
        self._core = client.CoreV1Api(api_client)
        self._networking = client.NetworkingV1Api(api_client)
        self._stopped = threading.Event()
        self._watches: list[watch.Watch] = []
        self._lock = threading.Lock()

    def _snapshot(self, kind: ResourceKind, obj: Any) -> ResourceSnapshot:
        if kind is ResourceKind.INGRESS:
            return snapshot_from_ingress(obj, manage_all=self.manage_all)
        return snapshot_from_service(obj)

    def _list_fn(self, kind: ResourceKind) -> Callable[..., Any]:
        if kind is ResourceKind.INGRESS:
            return self._networking.list_ingress_for_all_namespaces
        return self._core.list_service_for_all_namespaces

    def read(self, kind: ResourceKind, namespace: str, name: str) -> ResourceSnapshot:
        """Fetch the live object."""
        if kind is ResourceKind.INGRESS:
            obj = self._networking.read_namespaced_ingress(name=name, namespace=namespace)
        else:
            obj = self._core.read_namespaced_service(name=name, namespace=namespace)
        return self._snapshot(kind, obj)

    def stop(self) -> None:
        """End every open event stream."""
        self._stopped.set()
        with self._lock:
            for w in self._watches:
                w.stop()

    def _pause(self, delay: float) -> None:
        """Wait before reconnecting; returns early on stop()."""
        self._stopped.wait(delay)

    def _relist(
        self,
        kind: ResourceKind,
        known: dict[tuple[str, str], ResourceSnapshot],
    ) -> Generator[ResourceEvent, None, str | None]:
        """List every object, emit what changed since `known`, return the list version.

        Objects that disappeared while the watch was expired are emitted as Deleted.
        """
        fresh = self._list_fn(kind)()
        seen: set[tuple[str, str]] = set()

        for obj in fresh.items or []:
            snapshot = self._snapshot(kind, obj)
            seen.add(snapshot.key)
            event = self._to_event("ADDED", snapshot, known)
            if event is not None:
                yield event

        for key in [key for key in known if key not in seen]:
            yield Deleted(known.pop(key))

        return fresh.metadata.resource_version if fresh.metadata else None

    def events(self, kind: ResourceKind) -> Iterator[ResourceEvent]:
        """Yield lifecycle events for every object of `kind`, until stop().

        Transient stream failures are retried with capped backoff. Access
        denied (401/403) is raised.
        """
        known: dict[tuple[str, str], ResourceSnapshot] = {}
        resource_version: str | None = None
        relist = False
        failures = 0
        log = logger.bind(kind=kind.value)

        while not self._stopped.is_set():
            try:
                if relist:
                    resource_version = yield from self._relist(kind, known)
                    relist = False

                w = watch.Watch()
                with self._lock:
                    self._watches.append(w)
                log.info("Starting watch", resource_version=resource_version)

                kwargs: dict[str, Any] = {"timeout_seconds": WATCH_TIMEOUT_SECONDS}
                if resource_version:
                    kwargs["resource_version"] = resource_version

                try:
                    for raw in w.stream(self._list_fn(kind), **kwargs):
                        event_type = raw["type"]
                        obj = raw["object"]
                        if event_type == "BOOKMARK":
                            continue

                        resource_version = obj.metadata.resource_version
                        snapshot = self._snapshot(kind, obj)
                        event = self._to_event(event_type, snapshot, known)
                        if event is not None:
                            yield event
                finally:
                    with self._lock:
                        self._watches.remove(w)
                failures = 0
            except ApiException as e:
                if e.status == HTTP_GONE:
                    log.info("Watch expired, relisting")
                    resource_version = None
                    relist = True
                    continue
                if e.status in ACCESS_DENIED:
                    log.error("Kubernetes API access denied", status=e.status)
                    raise
                failures += 1
                delay = backoff_delay(failures, max_delay=WATCH_RETRY_MAX_DELAY)
                log.error("Kubernetes API watch error", status=e.status, delay=delay)
                self._pause(delay)
            except Exception as e:
                failures += 1
                delay = backoff_delay(failures, max_delay=WATCH_RETRY_MAX_DELAY)
                log.error("Watch stream failed", error=str(e), delay=delay)
                self._pause(delay)

    @staticmethod
    def _to_event(
        event_type: str,
        snapshot: ResourceSnapshot,
        known: dict[tuple[str, str], ResourceSnapshot],
    ) -> ResourceEvent | None:
        previous = known.get(snapshot.key)

        if event_type == "DELETED":
            known.pop(snapshot.key, None)
            return Deleted(snapshot)

        known[snapshot.key] = snapshot
        if previous is None:
            return Added(snapshot)
        if previous == snapshot:
            # Relist replay of an object we already handled.
            return None
        return Updated(previous, snapshot)
