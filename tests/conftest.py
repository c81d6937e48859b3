import pytest

from models.http import BaseRequest, HttpResponse


@pytest.fixture
def make_request():
    """Build a BaseRequest from a URL (query string is split into params)."""
    def _make(url="http://target.local/search", method="GET", headers=None, body="", id="1"):
        return BaseRequest.from_url(url, method=method, headers=headers or {}, body=body, id=id)
    return _make


@pytest.fixture
def make_response():
    def _make(body="", headers=None, status_code=200):
        return HttpResponse(status_code=status_code, headers=headers or {}, body=body)
    return _make


@pytest.fixture
def tmp_db(monkeypatch, tmp_path):
    """Point the storage layer at a throwaway SQLite file."""
    import storage.db

    path = tmp_path / "scanner-test.db"
    monkeypatch.setattr(storage.db, "DB_PATH", path)
    return path
