from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from .config import Config
from .mailer import Mailer
from .payments import PaymentsService
from .routes import RouteTable
from .strategies import StrategyRegistry

EXTENSION_KEY = "apihub"


@dataclass(frozen=True)
class Services:
    """Everything the pipeline needs, built once by the app factory."""

    config: Config
    strategies: StrategyRegistry
    routes: RouteTable
    mailer: Mailer
    payments: PaymentsService


def get_services() -> Services:
    return current_app.extensions[EXTENSION_KEY]


__all__ = ["EXTENSION_KEY", "Services", "get_services"]
