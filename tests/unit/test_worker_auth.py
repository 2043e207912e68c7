"""Worker OIDC 認証のユニットテスト

verify_worker_token Depends 関数が正しく動作することを検証する。
google.oauth2.id_token.verify_oauth2_token をモックして、
実際のトークン発行なしにテストする。
"""

from __future__ import annotations

from unittest.mock import patch

import pytest
from carpool.entrypoints.api.app import app
from carpool.entrypoints.api.deps import get_scheduler
from fastapi.testclient import TestClient

_VALID_EMAIL = "scheduler@example.iam.gserviceaccount.com"
_VALID_HEADERS = {"Authorization": "Bearer valid.oidc.token"}
_PAYLOAD = {"groupId": "group-1", "weekStartDate": "2026-10-19"}
_VERIFY = "carpool.entrypoints.api.worker_auth.id_token.verify_oauth2_token"


def _mock_verify(token, request, audience):  # noqa: ARG001
    """google.oauth2.id_token.verify_oauth2_token の正常系モック"""
    return {"email": _VALID_EMAIL, "sub": "12345"}


@pytest.fixture
def client(monkeypatch, services, schedule_repo, open_schedule):
    """in-memory の scheduler を差し込んだクライアント（対象週のスケジュールあり）"""
    monkeypatch.delenv("LOCAL_MODE", raising=False)
    monkeypatch.delenv("WORKER_SERVICE_ACCOUNT_EMAIL", raising=False)
    schedule_repo.create(open_schedule)
    app.dependency_overrides[get_scheduler] = lambda: services.scheduler
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()


def test_unconfigured_allowlist_returns_401(client):
    """WORKER_SERVICE_ACCOUNT_EMAIL 未設定時は fail-closed で 401"""
    with patch(_VERIFY, _mock_verify):
        response = client.post("/worker/generate", headers=_VALID_HEADERS, json=_PAYLOAD)

    assert response.status_code == 401


def test_no_auth_header_returns_401(client, monkeypatch):
    """Authorization ヘッダーなしのリクエストは 401 を返す"""
    monkeypatch.setenv("WORKER_SERVICE_ACCOUNT_EMAIL", _VALID_EMAIL)

    response = client.post("/worker/generate", json=_PAYLOAD)

    assert response.status_code == 401


def test_invalid_token_returns_401(client, monkeypatch):
    """検証に失敗するトークンは 401 を返す"""
    monkeypatch.setenv("WORKER_SERVICE_ACCOUNT_EMAIL", _VALID_EMAIL)

    def _raise(token, request, audience):  # noqa: ARG001
        raise ValueError("invalid token")

    with patch(_VERIFY, _raise):
        response = client.post(
            "/worker/generate", headers={"Authorization": "Bearer bad.token"}, json=_PAYLOAD
        )

    assert response.status_code == 401


def test_wrong_email_returns_401(client, monkeypatch):
    """許可されていないサービスアカウントは 401"""
    monkeypatch.setenv("WORKER_SERVICE_ACCOUNT_EMAIL", "other@example.iam.gserviceaccount.com")

    with patch(_VERIFY, _mock_verify):
        response = client.post("/worker/generate", headers=_VALID_HEADERS, json=_PAYLOAD)

    assert response.status_code == 401


def test_comma_separated_allowlist_accepts_token(client, monkeypatch):
    """カンマ区切りの許可リストのいずれかに一致すれば通る"""
    monkeypatch.setenv(
        "WORKER_SERVICE_ACCOUNT_EMAIL",
        f"other@example.iam.gserviceaccount.com, {_VALID_EMAIL}",
    )

    with patch(_VERIFY, _mock_verify):
        response = client.post("/worker/generate", headers=_VALID_HEADERS, json=_PAYLOAD)

    assert response.status_code == 200
    assert response.json()["status"] == "completed"


def test_local_mode_skips_verification(client, monkeypatch):
    """LOCAL_MODE では検証をスキップする"""
    monkeypatch.setenv("LOCAL_MODE", "true")

    response = client.post("/worker/generate", json=_PAYLOAD)

    assert response.status_code == 200
