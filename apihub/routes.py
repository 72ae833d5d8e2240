"""Explicit, ordered route table.

Mounts are evaluated in order and the first prefix that matches wins, so a
more specific prefix must come before any generic prefix that contains it.
``RouteTable`` refuses to be built otherwise.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass

BASE_URL = "/api"
GRAPHQL_URL = f"{BASE_URL}/graphql"

# Endpoints answered by the static/health stage; later stages leave them alone.
PASSTHROUGH_ENDPOINTS = frozenset({"static", "health.health_check"})


def bypasses_pipeline(endpoint: str | None) -> bool:
    return endpoint in PASSTHROUGH_ENDPOINTS


@dataclass(frozen=True)
class Mount:
    prefix: str
    name: str
    guarded: bool = False  # bearer token required before the mount sees the request

    def matches(self, path: str) -> bool:
        return path == self.prefix or path.startswith(self.prefix.rstrip("/") + "/")


class RouteTable:
    def __init__(self, mounts: tuple[Mount, ...]):
        seen: set[str] = set()
        for i, mount in enumerate(mounts):
            if not mount.prefix.startswith("/"):
                raise ValueError(f"mount prefix must start with '/': {mount.prefix!r}")
            if mount.prefix in seen:
                raise ValueError(f"duplicate mount prefix: {mount.prefix}")
            seen.add(mount.prefix)
            for earlier in mounts[:i]:
                if earlier.matches(mount.prefix):
                    raise ValueError(
                        f"mount {mount.prefix} is shadowed by earlier, more generic {earlier.prefix}"
                    )
        self._mounts = tuple(mounts)

    def __iter__(self) -> Iterator[Mount]:
        return iter(self._mounts)

    def __len__(self) -> int:
        return len(self._mounts)

    def resolve(self, path: str) -> Mount | None:
        for mount in self._mounts:
            if mount.matches(path):
                return mount
        return None

    def get(self, name: str) -> Mount | None:
        return next((m for m in self._mounts if m.name == name), None)


def build_route_table(*, docs: bool) -> RouteTable:
    mounts = [
        Mount("/health-check", "health"),
        Mount(f"{BASE_URL}/auth", "auth"),
        Mount(f"{BASE_URL}/mailer", "mailer"),
        Mount(f"{BASE_URL}/payments", "payments", guarded=True),
        Mount(GRAPHQL_URL, "graphql", guarded=True),
    ]
    if docs:
        mounts.append(Mount(f"{BASE_URL}/docs", "docs"))
    return RouteTable(tuple(mounts))


__all__ = [
    "BASE_URL",
    "GRAPHQL_URL",
    "PASSTHROUGH_ENDPOINTS",
    "Mount",
    "RouteTable",
    "build_route_table",
    "bypasses_pipeline",
]
