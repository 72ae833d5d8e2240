"""Authentication strategy registry.

Strategies are registered once when the app is built; the registry is
read-only afterwards. Routes that want a strategy look it up by name and call
``authenticate`` explicitly (nothing here enforces auth by itself).
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from types import MappingProxyType
from typing import Any, Protocol

from sqlalchemy import select
from werkzeug.security import check_password_hash

from .db import get_session
from .models import User


class Strategy(Protocol):
    name: str

    def authenticate(self, credentials: Mapping[str, Any]) -> User | None: ...


class LocalStrategy:
    """Email + password against the users table."""

    name = "local"
    username_field = "email"
    password_field = "password"

    def authenticate(self, credentials: Mapping[str, Any]) -> User | None:
        email = str(credentials.get(self.username_field) or "").strip().lower()
        password = str(credentials.get(self.password_field) or "")
        if not email or not password:
            return None
        user = get_session().scalars(select(User).where(User.email == email)).first()
        if user is None or not user.is_active:
            return None
        if not check_password_hash(user.password_hash, password):
            return None
        return user


class StrategyRegistry(Mapping[str, Strategy]):
    def __init__(self, *strategies: Strategy):
        table: dict[str, Strategy] = {}
        for s in strategies:
            if s.name in table:
                raise ValueError(f"duplicate strategy: {s.name}")
            table[s.name] = s
        self._table = MappingProxyType(table)

    def __getitem__(self, name: str) -> Strategy:
        return self._table[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._table)

    def __len__(self) -> int:
        return len(self._table)


def build_strategies() -> StrategyRegistry:
    return StrategyRegistry(LocalStrategy())


__all__ = ["LocalStrategy", "Strategy", "StrategyRegistry", "build_strategies"]
