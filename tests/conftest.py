"""Shared pytest fixtures for pifrost tests."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
from kubernetes import client

from pifrost.changeset import Action, ChangeSet, HostRecord
from pifrost.config import Config, KubernetesConfig, PiholeConfig, SettingsConfig
from pifrost.errors import ProviderRejected
from pifrost.resources import SERVICE_ANNOTATION, ResourceKind, ResourceSnapshot


class FakePihole:
    """In-memory stand-in for the Pi-hole custom DNS API."""

    def __init__(self, records: list[HostRecord] | None = None) -> None:
        self.records: list[HostRecord] = list(records or [])
        self.changes: list[tuple[str, str, str]] = []
        self.list_calls = 0

    def list_records(self) -> list[HostRecord]:
        self.list_calls += 1
        return list(self.records)

    def apply_change(self, change: ChangeSet) -> None:
        self.changes.append((change.action.value, change.hostname, change.ip))
        if change.action is Action.ADD:
            self.records.append(change.record)
        elif change.record in self.records:
            self.records.remove(change.record)
        else:
            raise ProviderRejected("This domain/ip association does not exist")


class FakeReader:
    """Serves live snapshots for IP polling, one per read call."""

    def __init__(self, *snapshots: ResourceSnapshot) -> None:
        self.snapshots = list(snapshots)
        self.reads = 0

    def read(self, kind: ResourceKind, namespace: str, name: str) -> ResourceSnapshot:
        self.reads += 1
        if len(self.snapshots) > 1:
            return self.snapshots.pop(0)
        return self.snapshots[0]


def make_snapshot(
    hostnames: tuple[str, ...] = ("app.example.com",),
    addresses: tuple[str, ...] = ("10.0.0.1",),
    kind: ResourceKind = ResourceKind.INGRESS,
    **kwargs: Any,
) -> ResourceSnapshot:
    fields: dict[str, Any] = {
        "name": "web",
        "namespace": "default",
        "managed": True,
        "eligible": True,
    }
    fields.update(kwargs)
    return ResourceSnapshot(kind=kind, hostnames=hostnames, addresses=addresses, **fields)


@pytest.fixture
def fake_pihole() -> FakePihole:
    return FakePihole()


@pytest.fixture
def sleeps(monkeypatch: pytest.MonkeyPatch) -> list[float]:
    """Record backoff sleeps instead of waiting."""
    slept: list[float] = []
    monkeypatch.setattr("pifrost.retry.time.sleep", slept.append)
    return slept


@pytest.fixture
def pihole_config() -> PiholeConfig:
    return PiholeConfig(host="pihole.local", token="test-token", insecure=True)


@pytest.fixture
def sample_config(pihole_config: PiholeConfig) -> Config:
    """Create a sample configuration for testing."""
    return Config(
        pihole=pihole_config,
        kubernetes=KubernetesConfig(ingress_auto=False, ingress_external_ip=None),
        settings=SettingsConfig(log_level="debug", health_port=None),
    )


@pytest.fixture
def sample_config_yaml(tmp_path: Path) -> Path:
    """Create a sample YAML config file for testing."""
    config_content = """
pihole:
  host: "pihole.local:8080"
  token: "test-token"
  insecure: true

kubernetes:
  kubeconfig: "/home/user/.kube/config"
  ingress_auto: true
  ingress_external_ip: "192.168.1.50"

settings:
  log_level: debug
  health_port: 8081
"""
    config_file = tmp_path / "config.yaml"
    config_file.write_text(config_content)
    return config_file


def make_ingress(
    hosts: list[str],
    ips: list[str] | None = None,
    annotations: dict[str, str] | None = None,
    name: str = "web",
    resource_version: str | None = None,
) -> client.V1Ingress:
    return client.V1Ingress(
        metadata=client.V1ObjectMeta(
            name=name,
            namespace="apps",
            annotations=annotations,
            resource_version=resource_version,
        ),
        spec=client.V1IngressSpec(rules=[client.V1IngressRule(host=h) for h in hosts]),
        status=client.V1IngressStatus(
            load_balancer=client.V1IngressLoadBalancerStatus(
                ingress=[client.V1IngressLoadBalancerIngress(ip=ip) for ip in ips or []]
            )
        ),
    )


def make_service(
    domain: str | None,
    ips: list[str] | None = None,
    service_type: str = "LoadBalancer",
) -> client.V1Service:
    annotations = {SERVICE_ANNOTATION: domain} if domain is not None else None
    return client.V1Service(
        metadata=client.V1ObjectMeta(name="db", namespace="apps", annotations=annotations),
        spec=client.V1ServiceSpec(type=service_type),
        status=client.V1ServiceStatus(
            load_balancer=client.V1LoadBalancerStatus(
                ingress=[client.V1LoadBalancerIngress(ip=ip) for ip in ips or []]
            )
        ),
    )
