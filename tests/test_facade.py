"""
Tests for the local and remote maintenance facades.

The remote facade talks to a real create_app() instance through FastAPI's
TestClient, backed by its own store. Every scenario is run against both
facades and the outcomes are compared.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from pathlib import Path

import httpx
import pytest
from fastapi.testclient import TestClient

from snmpdash.app import create_app
from snmpdash.config import AppConfig
from snmpdash.errors import (
    DestinationExistsError,
    InvalidArgumentError,
    ServiceError,
    SourceNotFoundError,
    StoreError,
    TransportError,
    UnauthenticatedError,
)
from snmpdash.facade import LocalSourceAdmin, RemoteSourceAdmin, SourceAdmin
from snmpdash.metrics import storage as storage_module
from snmpdash.metrics.storage import Sample, SampleStore, relabel_record
from snmpdash.security import TokenIntrospector

# =============================================================================
# Fixtures
# =============================================================================


def _seed(store: SampleStore) -> None:
    for source, timestamps in {"a": (1, 2, 3), "b": (3, 4)}.items():
        for ts in timestamps:
            store.insert(source, Sample(timestamp=ts, value=float(ts), source=source))


@pytest.fixture
def local(tmp_path: Path) -> Iterator[LocalSourceAdmin]:
    store = SampleStore.open(tmp_path / "local.db")
    _seed(store)
    yield LocalSourceAdmin(store)
    store.db.close()


@pytest.fixture
def remote_store(tmp_path: Path) -> Iterator[SampleStore]:
    store = SampleStore.open(tmp_path / "remote.db")
    _seed(store)
    yield store
    store.db.close()


@pytest.fixture
def remote(remote_store: SampleStore) -> Iterator[RemoteSourceAdmin]:
    client = TestClient(create_app(AppConfig(), remote_store))
    admin = RemoteSourceAdmin(client=client)
    yield admin
    admin.close()
    client.close()


def _outcome(action: Callable[[SourceAdmin], object], admin: SourceAdmin) -> object:
    try:
        action(admin)
    except ServiceError as e:
        return (type(e), e.error_code, e.message, e.details)
    return None


# =============================================================================
# Tests for behaviour
# =============================================================================


class TestRemoteOperations:
    """Tests for successful remote calls."""

    def test_read_all(self, remote: RemoteSourceAdmin, remote_store: SampleStore) -> None:
        """Test that remote read_all() returns Sample objects."""
        assert remote.read_all() == remote_store.read_all()

    def test_list_rename_merge_delete(self, remote: RemoteSourceAdmin) -> None:
        """Test a sequence of maintenance operations."""
        remote.rename("a", "c")
        assert remote.list_sources() == ["b", "c"]

        remote.merge("b", "c")
        assert remote.list_sources() == ["c"]
        assert [s.timestamp for s in remote.read_all()["c"]] == [1, 2, 3, 4]

        remote.delete("c")
        assert remote.list_sources() == []


class TestEquivalence:
    """Local and remote facades behave the same."""

    @pytest.mark.parametrize(
        ("action", "expected"),
        [
            (lambda admin: admin.rename("missing", "x"), SourceNotFoundError),
            (lambda admin: admin.rename("a", "b"), DestinationExistsError),
            (lambda admin: admin.rename("a", ""), InvalidArgumentError),
            (lambda admin: admin.merge("missing", "b"), SourceNotFoundError),
            (lambda admin: admin.delete("missing"), SourceNotFoundError),
            (lambda admin: admin.delete(""), InvalidArgumentError),
        ],
    )
    def test_same_errors(
        self,
        local: LocalSourceAdmin,
        remote: RemoteSourceAdmin,
        action: Callable[[SourceAdmin], object],
        expected: type[ServiceError],
    ) -> None:
        """Test that both facades raise identical errors."""
        local_outcome = _outcome(action, local)
        remote_outcome = _outcome(action, remote)

        assert local_outcome == remote_outcome
        assert isinstance(local_outcome, tuple)
        assert local_outcome[0] is expected

    @pytest.mark.parametrize(
        "action",
        [
            lambda admin: admin.rename("a", "c"),
            lambda admin: admin.merge("a", "b"),
            lambda admin: admin.merge("a", "a"),
            lambda admin: admin.delete("b"),
        ],
    )
    def test_same_results(
        self,
        local: LocalSourceAdmin,
        remote: RemoteSourceAdmin,
        action: Callable[[SourceAdmin], object],
    ) -> None:
        """Test that both facades leave the same data behind."""
        action(local)
        action(remote)

        assert local.read_all() == remote.read_all()

    def test_same_atomicity(
        self,
        local: LocalSourceAdmin,
        remote: RemoteSourceAdmin,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """Test that a mid-copy failure rolls back on both paths."""
        calls = {"n": 0}

        def relabel(raw: bytes, source: str) -> bytes:
            calls["n"] += 1
            if calls["n"] % 2 == 0:
                raise OSError("disk full")
            return relabel_record(raw, source)

        monkeypatch.setattr(storage_module, "relabel_record", relabel)
        before = local.read_all()

        local_outcome = _outcome(lambda admin: admin.merge("a", "b"), local)
        calls["n"] = 0
        remote_outcome = _outcome(lambda admin: admin.merge("a", "b"), remote)

        assert local_outcome == remote_outcome
        assert isinstance(local_outcome, tuple)
        assert local_outcome[0] is StoreError
        monkeypatch.undo()
        assert local.read_all() == before
        assert remote.read_all() == before


# =============================================================================
# Tests for remote-only failures
# =============================================================================


class TestRemoteFailures:
    """Tests for transport and authentication failures."""

    def test_unreachable_service(self) -> None:
        """Test that connection errors raise TransportError."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        client = httpx.Client(base_url="http://localhost:8080", transport=httpx.MockTransport(handler))
        admin = RemoteSourceAdmin(client=client)

        with pytest.raises(TransportError):
            admin.list_sources()

    def test_non_jsonrpc_answer(self) -> None:
        """Test that an unexpected body raises TransportError."""
        client = httpx.Client(
            base_url="http://localhost:8080",
            transport=httpx.MockTransport(lambda _r: httpx.Response(200, text="hello")),
        )

        with pytest.raises(TransportError):
            RemoteSourceAdmin(client=client).list_sources()

    def test_http_error_status(self) -> None:
        """Test that non-200 answers raise TransportError."""
        client = httpx.Client(
            base_url="http://localhost:8080",
            transport=httpx.MockTransport(lambda _r: httpx.Response(502)),
        )

        with pytest.raises(TransportError) as exc_info:
            RemoteSourceAdmin(client=client).list_sources()

        assert exc_info.value.details["status"] == 502

    def test_unauthenticated(self, remote_store: SampleStore) -> None:
        """Test that a rejected token raises UnauthenticatedError."""
        introspector = TokenIntrospector(
            "https://idp.example.com/introspect",
            transport=httpx.MockTransport(lambda _r: httpx.Response(200, json={"active": False})),
        )
        app = create_app(AppConfig(), remote_store, introspector=introspector)

        with TestClient(app) as client:
            admin = RemoteSourceAdmin(client=client, token="expired")
            with pytest.raises(UnauthenticatedError):
                admin.list_sources()

    def test_sends_bearer_token(self) -> None:
        """Test that the token is sent in the Authorization header."""
        seen: dict[str, str | None] = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers.get("Authorization")
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": []})

        client = httpx.Client(base_url="http://localhost:8080", transport=httpx.MockTransport(handler))

        assert RemoteSourceAdmin(client=client, token="tok").list_sources() == []
        assert seen["auth"] == "Bearer tok"
