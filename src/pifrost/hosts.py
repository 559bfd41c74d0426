"""Multiset arithmetic over hostname lists."""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from typing import NamedTuple


class HostDiff(NamedTuple):
    added: list[str]
    removed: list[str]
    both: list[str]


def diff(previous: Iterable[str], current: Iterable[str]) -> HostDiff:
    """Compare two hostname multisets.

    added holds hostnames whose count grew, removed those whose count shrank,
    and both is the multiset intersection. Output follows first-seen order.
    """
    prev = list(previous)
    curr = list(current)
    prev_count = Counter(prev)
    curr_count = Counter(curr)

    added = [h for h in dict.fromkeys(curr) if curr_count[h] > prev_count[h]]
    removed = [h for h in dict.fromkeys(prev) if prev_count[h] > curr_count[h]]

    remaining = prev_count & curr_count
    both: list[str] = []
    for host in prev:
        if remaining[host] > 0:
            both.append(host)
            remaining[host] -= 1

    return HostDiff(added, removed, both)


def same_set(a: Iterable[str], b: Iterable[str]) -> bool:
    """True when both lists hold the same hostnames, ignoring order."""
    return sorted(a) == sorted(b)


def unique(hosts: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(hosts))
