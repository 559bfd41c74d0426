"""Tests for the resource IP resolver."""

from __future__ import annotations

import pytest
from conftest import FakeReader, make_snapshot

from pifrost.errors import ConnectivityError, MultipleLoadBalancerIPs, NoLoadBalancerIP
from pifrost.resolver import (
    INGRESS_POLL_ATTEMPTS,
    SERVICE_POLL_ATTEMPTS,
    IPResolver,
    single_address,
)
from pifrost.resources import ResourceKind


class FailingReader:
    def __init__(self) -> None:
        self.reads = 0

    def read(self, kind: ResourceKind, namespace: str, name: str) -> None:
        self.reads += 1
        raise RuntimeError("connection reset by peer")


class TestResolveIP:
    """Tests for IPResolver.resolve_ip."""

    def test_assigned_immediately(self, sleeps: list[float]) -> None:
        reader = FakeReader(make_snapshot(addresses=("10.0.0.1",)))
        resolver = IPResolver(reader, attempts=INGRESS_POLL_ATTEMPTS)

        assert resolver.resolve_ip(make_snapshot(addresses=())) == "10.0.0.1"
        assert reader.reads == 1
        assert sleeps == []

    def test_assigned_after_polling(self, sleeps: list[float]) -> None:
        reader = FakeReader(
            make_snapshot(addresses=()),
            make_snapshot(addresses=()),
            make_snapshot(addresses=("10.0.0.2",)),
        )
        resolver = IPResolver(reader, attempts=INGRESS_POLL_ATTEMPTS)

        assert resolver.resolve_ip(make_snapshot(addresses=())) == "10.0.0.2"
        assert reader.reads == 3
        assert sleeps == [2.0, 4.0]

    @pytest.mark.parametrize("attempts", [INGRESS_POLL_ATTEMPTS, SERVICE_POLL_ATTEMPTS])
    def test_budget_exhausted(self, sleeps: list[float], attempts: int) -> None:
        reader = FakeReader(make_snapshot(addresses=()))
        resolver = IPResolver(reader, attempts=attempts)

        with pytest.raises(NoLoadBalancerIP):
            resolver.resolve_ip(make_snapshot(addresses=()))

        assert reader.reads == attempts
        assert len(sleeps) == attempts - 1

    def test_multiple_addresses(self, sleeps: list[float]) -> None:
        reader = FakeReader(make_snapshot(addresses=("10.0.0.1", "10.0.0.2")))
        resolver = IPResolver(reader, attempts=SERVICE_POLL_ATTEMPTS)

        with pytest.raises(MultipleLoadBalancerIPs):
            resolver.resolve_ip(make_snapshot())

    def test_hostname_only_entry(self, sleeps: list[float]) -> None:
        reader = FakeReader(make_snapshot(addresses=("",)))

        with pytest.raises(NoLoadBalancerIP):
            IPResolver(reader, attempts=3).resolve_ip(make_snapshot())

    def test_read_failure_not_retried(self, sleeps: list[float]) -> None:
        reader = FailingReader()

        with pytest.raises(ConnectivityError):
            IPResolver(reader, attempts=8).resolve_ip(make_snapshot())

        assert reader.reads == 1

    def test_override_bypasses_polling(self, sleeps: list[float]) -> None:
        reader = FailingReader()
        resolver = IPResolver(reader, attempts=8, override="192.168.1.50")

        assert resolver.resolve_ip(make_snapshot(addresses=())) == "192.168.1.50"
        assert reader.reads == 0


class TestLastKnownIP:
    def test_uses_snapshot_status(self) -> None:
        reader = FailingReader()
        resolver = IPResolver(reader, attempts=8)

        assert resolver.last_known_ip(make_snapshot(addresses=("10.0.0.3",))) == "10.0.0.3"
        assert reader.reads == 0

    def test_override(self) -> None:
        resolver = IPResolver(FailingReader(), attempts=8, override="192.168.1.50")
        assert resolver.last_known_ip(make_snapshot(addresses=())) == "192.168.1.50"

    def test_no_address(self) -> None:
        with pytest.raises(NoLoadBalancerIP):
            IPResolver(FailingReader(), attempts=8).last_known_ip(make_snapshot(addresses=()))


def test_single_address_rejects_many() -> None:
    with pytest.raises(MultipleLoadBalancerIPs):
        single_address(make_snapshot(addresses=("1.1.1.1", "2.2.2.2")))
