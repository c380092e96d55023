import base64
import json
from types import SimpleNamespace

import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials
from jose import jwt

from app.core import auth_utils, roles
from tests.utils.fake_supabase import FakeSupabase


def _unsigned_token(header: dict, payload: dict) -> str:
    """
    三段式 JWT 字符串即可触发 jose 的 header 解析；非 HS256 会走 Supabase Auth 校验分支。
    """

    def b64url(obj: dict) -> str:
        raw = json.dumps(obj, separators=(",", ":")).encode("utf-8")
        return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("utf-8")

    sig = base64.urlsafe_b64encode(b"sig").rstrip(b"=").decode("utf-8")
    return f"{b64url(header)}.{b64url(payload)}.{sig}"


@pytest.mark.asyncio
async def test_missing_credentials_is_401():
    with pytest.raises(HTTPException) as exc:
        await auth_utils.get_current_user(None)
    assert exc.value.status_code == 401


@pytest.mark.asyncio
async def test_hs256_token_is_decoded_locally(monkeypatch):
    secret = "unit-secret"
    monkeypatch.setattr(auth_utils, "SUPABASE_JWT_SECRET", secret)
    token = jwt.encode({"sub": "u1", "email": "u@example.com", "aud": "authenticated"}, secret, algorithm="HS256")

    user = await auth_utils.get_current_user(HTTPAuthorizationCredentials(scheme="Bearer", credentials=token))
    assert user == {"id": "u1", "email": "u@example.com"}


@pytest.mark.asyncio
async def test_hs256_token_without_sub_is_401(monkeypatch):
    secret = "unit-secret"
    monkeypatch.setattr(auth_utils, "SUPABASE_JWT_SECRET", secret)
    token = jwt.encode({"email": "u@example.com", "aud": "authenticated"}, secret, algorithm="HS256")

    with pytest.raises(HTTPException) as exc:
        await auth_utils.get_current_user(HTTPAuthorizationCredentials(scheme="Bearer", credentials=token))
    assert exc.value.status_code == 401


@pytest.mark.asyncio
async def test_non_hs256_falls_back_to_supabase_auth(monkeypatch):
    token = _unsigned_token({"alg": "RS256", "typ": "JWT"}, {"sub": "user-1"})
    fake = SimpleNamespace(
        auth=SimpleNamespace(
            get_user=lambda _t: SimpleNamespace(user=SimpleNamespace(id="user-1", email="u@example.com"))
        )
    )
    monkeypatch.setattr(auth_utils, "supabase", fake)

    user = await auth_utils.get_current_user(HTTPAuthorizationCredentials(scheme="Bearer", credentials=token))
    assert user["id"] == "user-1"


@pytest.mark.asyncio
async def test_fallback_failure_is_401_not_500(monkeypatch):
    token = _unsigned_token({"alg": "RS256", "typ": "JWT"}, {"sub": "user-1"})

    def boom(_t):
        raise RuntimeError("auth service down")

    monkeypatch.setattr(auth_utils, "supabase", SimpleNamespace(auth=SimpleNamespace(get_user=boom)))
    with pytest.raises(HTTPException) as exc:
        await auth_utils.get_current_user(HTTPAuthorizationCredentials(scheme="Bearer", credentials=token))
    assert exc.value.status_code == 401


def test_role_helpers(monkeypatch):
    monkeypatch.delenv("WORKFLOW_EDITOR_ROLES", raising=False)
    assert roles.parse_roles({"roles": [" Editor ", "", "author"]}) == {"editor", "author"}
    assert roles.is_editor({"roles": ["manager"]})
    assert not roles.is_editor({"roles": ["reviewer"]})
    assert roles.is_privileged({"roles": ["admin"]})
    assert not roles.is_privileged(None)


@pytest.mark.asyncio
async def test_profile_created_on_first_access_with_admin_email(monkeypatch):
    db = FakeSupabase()
    monkeypatch.setattr(roles, "supabase_admin", db)
    monkeypatch.setenv("ADMIN_EMAILS", "boss@example.com")

    profile = await roles.get_current_profile({"id": "u1", "email": "Boss@Example.com"})
    assert "admin" in profile["roles"]
    assert db.rows("user_profiles")[0]["id"] == "u1"


@pytest.mark.asyncio
async def test_profile_lookup_failure_degrades_to_author(monkeypatch):
    db = FakeSupabase()
    db.fail("user_profiles", RuntimeError("down"))
    monkeypatch.setattr(roles, "supabase_admin", db)
    monkeypatch.delenv("ADMIN_EMAILS", raising=False)

    profile = await roles.get_current_profile({"id": "u1", "email": "a@example.com"})
    assert profile == {"id": "u1", "email": "a@example.com", "roles": ["author"]}


@pytest.mark.asyncio
async def test_require_any_role_rejects_missing_role():
    dep = roles.require_any_role(["editor"])
    with pytest.raises(HTTPException) as exc:
        await dep({"id": "u1", "roles": ["author"]})
    assert exc.value.status_code == 403
    assert await dep({"id": "u1", "roles": ["editor"]}) == {"id": "u1", "roles": ["editor"]}


@pytest.mark.asyncio
async def test_require_editor_uses_configured_editor_roles(monkeypatch):
    monkeypatch.setenv("WORKFLOW_EDITOR_ROLES", "managing_editor")
    dep = roles.require_editor()
    with pytest.raises(HTTPException) as exc:
        await dep({"id": "u1", "roles": ["editor"]})
    assert exc.value.status_code == 403
    assert await dep({"id": "u2", "roles": ["managing_editor"]}) == {"id": "u2", "roles": ["managing_editor"]}
