import os
import sys
from pathlib import Path

import pytest

# Allow `import markhive` without installing the package.
ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from markhive.errors import GatewayError  # noqa: E402
from markhive.service import HierarchyService  # noqa: E402
from markhive.store_memory import MemoryStore  # noqa: E402
from markhive.store_sqlite import SqliteStore  # noqa: E402

WRITE_METHODS = {"save", "update", "delete", "update_position", "update_favorite_status"}


class RecordingGateway:
    """Wraps a gateway, records every call and can fail on demand."""

    def __init__(self, inner):
        self._inner = inner
        self.calls = []
        self._budgets = {}

    def fail(self, method, *, after=0, exc=None):
        """Let ``after`` calls of ``method`` through, then raise on every later one."""
        self._budgets[method] = (after, exc or GatewayError(f"simulated {method} failure"))

    def __getattr__(self, name):
        attr = getattr(self._inner, name)
        if name == "transaction" or not callable(attr):
            return attr

        def wrapper(*args, **kwargs):
            self.calls.append((name, args))
            if name in self._budgets:
                left, exc = self._budgets[name]
                if left <= 0:
                    raise exc
                self._budgets[name] = (left - 1, exc)
            return attr(*args, **kwargs)

        return wrapper

    @property
    def writes(self):
        return [c for c in self.calls if c[0] in WRITE_METHODS]


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch, tmp_path):
    for key in list(os.environ):
        if key.startswith("MARKHIVE_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def gateways(store):
    return RecordingGateway(store.bookmarks), RecordingGateway(store.folders)


@pytest.fixture
def service(gateways):
    bookmarks, folders = gateways
    return HierarchyService(bookmarks, folders)


@pytest.fixture
def sqlite_store(tmp_path):
    with SqliteStore(tmp_path / "bookmarks.sqlite") as s:
        yield s


@pytest.fixture
def sqlite_service(sqlite_store):
    return HierarchyService(sqlite_store.bookmarks, sqlite_store.folders)


@pytest.fixture
def sample_tree(service):
    """F holds b1, b2 and subfolder F2; F2 holds b3. One loose root bookmark."""
    f = service.create_folder("F")
    f2 = service.create_folder("F2", f.id)
    b1 = service.add_bookmark("One", "https://one.example/", folder_id=f.id)
    b2 = service.add_bookmark("Two", "https://two.example/", folder_id=f.id)
    b3 = service.add_bookmark("Three", "https://three.example/", folder_id=f2.id)
    loose = service.add_bookmark("Loose", "https://loose.example/")
    return {"F": f, "F2": f2, "b1": b1, "b2": b2, "b3": b3, "loose": loose}
