from __future__ import annotations

import io
import json
from typing import Any, List
from urllib.error import HTTPError

import pytest

import powcost.remote as remote
from powcost.remote import RemoteStore, RemoteStoreError
from powcost.retry import RetryPolicy


class _Response(io.BytesIO):
    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()
        return False


class _Recorder:
    def __init__(self, *payloads: Any) -> None:
        self.payloads = list(payloads)
        self.requests: List[Any] = []

    def __call__(self, request, timeout):
        self.requests.append(request)
        payload = self.payloads.pop(0)
        if isinstance(payload, Exception):
            raise payload
        return _Response(json.dumps(payload).encode("utf-8"))


def test_unconfigured_store_refuses_requests():
    store = RemoteStore("", "")
    assert store.is_connected() is False
    with pytest.raises(RemoteStoreError):
        store.get_items()


def test_get_items_sends_auth_headers(monkeypatch):
    recorder = _Recorder([{"id": 1, "item_no": "A", "unit_cost": "12.5", "cost_type": "Labor"}])
    monkeypatch.setattr(remote, "urlopen", recorder)

    items = RemoteStore("https://db.example.com/", "anon").get_items()

    assert [item.unit_cost for item in items] == [12.5]
    request = recorder.requests[0]
    assert request.full_url == "https://db.example.com/rest/v1/items?order=category.asc,item_no.asc"
    assert request.get_header("Apikey") == "anon"
    assert request.get_header("Authorization") == "Bearer anon"


def test_project_items_flatten_joined_item_columns(monkeypatch):
    row = {
        "id": 4,
        "project_id": "p",
        "item_id": 2,
        "quantity": 3,
        "unit_cost": 10,
        "total_cost": 30,
        "items": {"item_no": "EL-1", "description": "Wire", "category": "Electrical", "unit": "m", "cost_type": "Material"},
    }
    monkeypatch.setattr(remote, "urlopen", _Recorder([row]))

    [project_item] = RemoteStore("https://db.example.com", "anon").get_project_items("p")
    assert project_item.item_no == "EL-1"
    assert project_item.category == "Electrical"
    assert project_item.total_cost == 30


def test_upsert_indirect_costs_requests_merge(monkeypatch):
    recorder = _Recorder([{"id": 9, "project_id": "p", "ocm_percent": 6}])
    monkeypatch.setattr(remote, "urlopen", recorder)

    record = RemoteStore("https://db.example.com", "anon").upsert_indirect_costs({"id": 1, "project_id": "p", "ocm_percent": 6})

    assert record.id == 9
    request = recorder.requests[0]
    assert request.get_method() == "POST"
    assert "merge-duplicates" in request.get_header("Prefer")
    assert json.loads(request.data) == {"project_id": "p", "ocm_percent": 6}


def test_client_errors_are_not_retried(monkeypatch):
    error = HTTPError("https://db.example.com", 401, "Unauthorized", hdrs=None, fp=None)
    recorder = _Recorder(error, [])
    monkeypatch.setattr(remote, "urlopen", recorder)

    store = RemoteStore("https://db.example.com", "anon", RetryPolicy(retries=2))
    with pytest.raises(RemoteStoreError, match="401"):
        store.get_items()
    assert len(recorder.requests) == 1


def test_server_errors_are_retried(monkeypatch):
    error = HTTPError("https://db.example.com", 503, "Unavailable", hdrs=None, fp=None)
    recorder = _Recorder(error, [])
    monkeypatch.setattr(remote, "urlopen", recorder)

    store = RemoteStore("https://db.example.com", "anon", RetryPolicy(retries=1))
    assert store.get_items() == []
    assert len(recorder.requests) == 2
