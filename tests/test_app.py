import pytest
from fastapi.testclient import TestClient
from pymongo.errors import ServerSelectionTimeoutError

import database
import main
from main import create_app


class UnreachableMongo:
    """Stands in for a MongoClient whose server never answers."""

    def __init__(self, uri, **kwargs):
        self.uri = uri
        self.admin = self

    def command(self, name):
        raise ServerSelectionTimeoutError(f"{self.uri}: connection refused")


def test_startup_aborts_when_database_is_unreachable(settings, monkeypatch):
    bootstrapped = []
    monkeypatch.setattr(database, "MongoClient", UnreachableMongo)
    monkeypatch.setattr(main, "ensure_default_admin", lambda db, s: bootstrapped.append(db))

    app = create_app(settings.model_copy(update={"mongodb_uri": "mongodb://127.0.0.1:1"}))
    with pytest.raises(ServerSelectionTimeoutError):
        with TestClient(app):
            pass

    assert bootstrapped == []
    assert database.db is None
