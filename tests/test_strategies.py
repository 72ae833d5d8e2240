import pytest
from _helpers import PASSWORD, create_user

from apihub.context import EXTENSION_KEY
from apihub.strategies import LocalStrategy, StrategyRegistry


def test_registry_built_with_local_strategy(app):
    registry = app.extensions[EXTENSION_KEY].strategies
    assert list(registry) == ["local"]
    assert isinstance(registry["local"], LocalStrategy)


def test_registry_is_read_only(app):
    registry = app.extensions[EXTENSION_KEY].strategies
    with pytest.raises(TypeError):
        registry["other"] = LocalStrategy()  # type: ignore[index]


def test_registry_rejects_duplicates():
    with pytest.raises(ValueError):
        StrategyRegistry(LocalStrategy(), LocalStrategy())


def test_local_strategy_authenticates(app):
    u = create_user(app, "local@example.com")
    strategy = LocalStrategy()
    with app.app_context():
        assert strategy.authenticate({"email": "local@example.com", "password": PASSWORD}).id == u.id
        assert strategy.authenticate({"email": "local@example.com", "password": "nope-nope"}) is None
        assert strategy.authenticate({"email": "missing@example.com", "password": PASSWORD}) is None
        assert strategy.authenticate({}) is None


def test_strategies_do_not_enforce_anything(client):
    # the auth stage only attaches context; open mounts stay open
    assert client.post("/api/mailer/send", json={"template": "welcome"}).status_code == 422
