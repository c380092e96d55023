import os
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator

import jwt
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# 中文注释: 测试中不做启动期 schema 探测，也不连真实 Supabase
os.environ.setdefault("WORKFLOW_PROBE_SCHEMA", "0")
os.environ.setdefault("SUPABASE_URL", "http://localhost:54321")
os.environ.setdefault("SUPABASE_KEY", "test-anon-key")

from main import app  # noqa: E402
from app.core.auth_utils import get_current_user  # noqa: E402
from app.core.roles import get_current_profile  # noqa: E402
from app.lib.api_client import get_workflow_client  # noqa: E402
from app.services.schema_capabilities import SchemaCapabilities, set_schema_capabilities  # noqa: E402
from tests.utils.fake_supabase import FakeSupabase  # noqa: E402
from tests.utils.profiles import AUTHOR, EDITOR, OUTSIDER, REVIEWER  # noqa: E402,F401

# === 全局测试配置 ===
# 中文注释:
# 1. 显式使用 pytest_asyncio.fixture 解决 STRICT 模式下的生成器问题。
# 2. 服务层测试统一使用内存版 FakeSupabase，API 测试通过 dependency_overrides 注入。
# 3. JWT 令牌生成用于认证链路测试。


@pytest.fixture(autouse=True)
def _schema_caps():
    """每个测试使用确定的 schema 能力（整数 status，无可选列/表），结束后清空缓存。"""
    set_schema_capabilities(SchemaCapabilities.defaults())
    yield
    set_schema_capabilities(None)


@pytest.fixture
def fake_db() -> FakeSupabase:
    return FakeSupabase(
        {
            "user_profiles": [dict(EDITOR), dict(AUTHOR), dict(REVIEWER), dict(OUTSIDER)],
        }
    )


@pytest.fixture
def as_user(fake_db):
    """
    切换当前登录用户：as_user(EDITOR) -> 后续请求以该 profile 身份执行。
    """

    def _set(profile: dict) -> None:
        app.dependency_overrides[get_current_user] = lambda: {"id": profile["id"], "email": profile.get("email")}
        app.dependency_overrides[get_current_profile] = lambda: dict(profile)

    app.dependency_overrides[get_workflow_client] = lambda: fake_db
    yield _set
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client() -> AsyncGenerator:
    """
    提供一个模拟的异步测试客户端
    """
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://testserver"
    ) as ac:
        yield ac


def generate_test_token(user_id: str = "00000000-0000-0000-0000-000000000000", *, expires_in: timedelta = timedelta(hours=1)):
    """
    生成用于测试的JWT令牌（与 get_current_user 的 HS256 校验一致）
    """
    secret = os.environ.get("SUPABASE_JWT_SECRET", "mock-secret-replace-later")
    now = datetime.now(timezone.utc)

    payload = {
        "sub": user_id,
        "email": "test@example.com",
        "aud": "authenticated",
        "exp": now + expires_in,
        "iat": now,
        "role": "authenticated"
    }

    return jwt.encode(payload, secret, algorithm="HS256")


@pytest.fixture
def auth_token():
    return generate_test_token()


@pytest.fixture
def expired_token():
    return generate_test_token(expires_in=timedelta(hours=-1))


@pytest.fixture
def invalid_token():
    return "invalid.jwt.token"
