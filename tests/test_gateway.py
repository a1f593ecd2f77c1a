import pytest
import requests

from core.errors import (
    ConcurrencyError,
    ConfigurationError,
    NotFoundError,
    TransportError,
    Unauthorized,
    ValidationError,
)
from scanner_client.config import ClientSettings
from scanner_client.gateway import SyncGateway, make_gateway_from_env

API = "https://inventory.test/api/"


class DummyResponse:
    def __init__(self, payload, status_code=200):
        self._payload = payload
        self.status_code = status_code

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class FakeHttp:
    """Stands in for a requests.Session: queued outcomes, recorded calls."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def _submit(gateway, **overrides):
    payload = {"item_code": "BK-001", "qty": 5, "location": "Warehouse A", "user": "Dana"}
    payload.update(overrides)
    return gateway.submit_transaction(**payload)


class TestReads:
    def test_bootstrap_request(self):
        http = FakeHttp(DummyResponse({"success": True, "user": {}, "locations": [], "items": []}))
        data = SyncGateway(API, http=http).bootstrap("dana@example.com")
        assert data["success"] is True
        method, url, kwargs = http.calls[0]
        assert (method, url) == ("GET", API)
        assert kwargs["params"] == {"action": "bootstrap", "identity": "dana@example.com"}
        assert kwargs["timeout"] == 30.0

    def test_error_body_wins_over_status(self):
        http = FakeHttp(DummyResponse({"error": "unauthorized", "message": "User x is not authorized"}, 200))
        with pytest.raises(Unauthorized, match="not authorized"):
            SyncGateway(API, http=http).bootstrap("x")

    def test_success_body_wins_over_status(self):
        http = FakeHttp(DummyResponse({"code": "BK-001"}, 500))
        assert SyncGateway(API, http=http).lookup_legacy("BK-001") == {"code": "BK-001"}

    def test_legacy_not_found(self):
        http = FakeHttp(DummyResponse({"error": "not found"}, 404))
        with pytest.raises(NotFoundError):
            SyncGateway(API, http=http).lookup_legacy("nope")
        assert http.calls[0][2]["params"] == {"code": "nope"}

    def test_read_transport_failure_is_not_ambiguous(self):
        http = FakeHttp(requests.ConnectionError("offline"))
        with pytest.raises(TransportError) as exc:
            SyncGateway(API, http=http).bootstrap("dana@example.com")
        assert exc.value.outcome_unknown is False

    def test_unreadable_body(self):
        http = FakeHttp(DummyResponse(ValueError("not json"), 502))
        with pytest.raises(TransportError, match="unreadable"):
            SyncGateway(API, http=http).lookup_legacy("BK-001")

    def test_non_object_body(self):
        http = FakeHttp(DummyResponse(["BK-001"]))
        with pytest.raises(TransportError):
            SyncGateway(API, http=http).lookup_legacy("BK-001")

    def test_module_level_requests_by_default(self, monkeypatch):
        calls = []

        def fake_request(method, url, **kwargs):
            calls.append((method, url))
            return DummyResponse({"code": "TT-9", "total": 7})

        monkeypatch.setattr(requests, "request", fake_request)
        assert SyncGateway(API).lookup_legacy("TT-9")["total"] == 7
        assert calls == [("GET", API)]


class TestSubmit:
    def test_posts_payload_once(self):
        http = FakeHttp(DummyResponse({"success": True, "new_qty": 15}))
        result = _submit(SyncGateway(API, http=http), comments=None)
        assert result["new_qty"] == 15
        [(method, _, kwargs)] = http.calls
        assert method == "POST"
        assert kwargs["json"] == {
            "item_code": "BK-001",
            "qty": 5.0,
            "location": "Warehouse A",
            "user": "Dana",
            "comments": "",
        }

    def test_transport_failure_is_outcome_unknown_and_not_retried(self):
        http = FakeHttp(requests.Timeout("slow"), DummyResponse({"success": True}))
        with pytest.raises(TransportError) as exc:
            _submit(SyncGateway(API, http=http))
        assert exc.value.outcome_unknown is True
        assert len(http.calls) == 1

    def test_concurrency_error_is_retryable(self):
        http = FakeHttp(DummyResponse({"error": "concurrency", "message": "busy", "retryable": True}, 409))
        with pytest.raises(ConcurrencyError) as exc:
            _submit(SyncGateway(API, http=http))
        assert exc.value.retryable

    def test_not_found_keeps_kind(self):
        http = FakeHttp(DummyResponse({"error": "not-found", "message": "location 'X' not found", "kind": "location", "value": "X"}))
        with pytest.raises(NotFoundError) as exc:
            _submit(SyncGateway(API, http=http), location="X")
        assert exc.value.kind == "location"

    @pytest.mark.parametrize(
        "overrides, message",
        [
            ({"item_code": ""}, "item_code"),
            ({"qty": "abc"}, "qty"),
            ({"qty": float("nan")}, "qty"),
            ({"location": ""}, "location"),
            ({"user": ""}, "user"),
        ],
    )
    def test_invalid_payload_is_not_sent(self, overrides, message):
        http = FakeHttp()
        with pytest.raises(ValidationError, match=message):
            _submit(SyncGateway(API, http=http), **overrides)
        assert http.calls == []


def test_gateway_from_env_requires_url():
    settings = ClientSettings()
    settings.api_url = ""
    with pytest.raises(ConfigurationError):
        make_gateway_from_env(settings)

    settings.api_url = API
    settings.api_timeout = 4.0
    gateway = make_gateway_from_env(settings)
    assert (gateway.base_url, gateway.timeout) == (API, 4.0)
