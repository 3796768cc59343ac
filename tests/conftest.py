import pytest
import litenom.config as cfg
import litenom.schema.schema_registry as schema_registry
from litenom.database import Database


@pytest.fixture
def database(tmp_path):
    db = Database(str(tmp_path / 'test.db3'))
    with db:
        yield db


@pytest.fixture
def isolated_registry(monkeypatch):
    monkeypatch.setattr(schema_registry, '_registered_models', dict(schema_registry._registered_models))
    monkeypatch.setattr(schema_registry, '_sorted_models', None)
    yield


@pytest.fixture
def clean_config():
    cfg.reset()
    yield
    cfg.reset()
