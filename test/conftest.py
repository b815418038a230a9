import pytest
from fastapi.testclient import TestClient

from api import state
from storage.image_store import ImageStore
from storage.memory_store import InMemoryRepository
from sync.change_feed import ChangeFeed
from sync.undo import UndoManager


class FakeProvider:
    def __init__(self, response_text: str = "", error: Exception = None):
        self._response_text = response_text
        self._error = error
        self.calls = []

    def generate(self, *, system: str, user: str, **kwargs) -> str:
        self.calls.append({"system": system, "user": user, **kwargs})
        if self._error is not None:
            raise self._error
        return self._response_text


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_provider_factory():
    def _make(response_text: str = "", error: Exception = None):
        return FakeProvider(response_text, error)
    return _make


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def feed():
    return ChangeFeed()


@pytest.fixture
def repo(feed):
    return InMemoryRepository(feed)


@pytest.fixture
def undo_manager(clock):
    return UndoManager(window_s=3, clock=clock)


@pytest.fixture
def app_state(tmp_path, monkeypatch):
    """Fresh process state for the API: in-memory repo, images under tmp_path."""
    monkeypatch.setattr(state, "feed", ChangeFeed())
    monkeypatch.setattr(state, "repo", None)
    monkeypatch.setattr(state, "undo_manager", None)
    monkeypatch.setattr(state, "token_store", None)
    monkeypatch.setattr(state, "image_store", ImageStore(root=str(tmp_path / "images")))
    monkeypatch.setattr(state, "llm_client", None)
    return state


@pytest.fixture
def client(app_state):
    # No context manager: startup would replace the prepared state
    from api.main import app

    yield TestClient(app)
    app.dependency_overrides.clear()
