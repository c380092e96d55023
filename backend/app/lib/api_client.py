import os
from supabase import create_client, Client
from app.core.config import app_config
from typing import Any, Optional, Callable

url: str = app_config.supabase_url

# anon key：SUPABASE_ANON_KEY 优先，其次 SUPABASE_KEY
key: str = os.environ.get("SUPABASE_ANON_KEY") or os.environ.get("SUPABASE_KEY") or ""

service_role_key: str = app_config.supabase_key or os.environ.get(
    "SUPABASE_SERVICE_ROLE_KEY", ""
)

class _LazySupabaseClient:
    """
    首次访问时才创建 Supabase client。

    中文注释: import 期不读取连接配置；缺 URL/KEY 时在第一次查询时抛 RuntimeError。
    """

    def __init__(self, factory: Callable[[], Client], *, name: str):
        self._factory = factory
        self._name = name
        self._client: Optional[Client] = None

    def _get(self) -> Client:
        if self._client is None:
            self._client = self._factory()
        return self._client

    def __getattr__(self, item: str) -> Any:
        return getattr(self._get(), item)

    def __repr__(self) -> str:
        state = "ready" if self._client is not None else "lazy"
        return f"<LazySupabaseClient {self._name} ({state})>"


def _require_supabase_url() -> str:
    if not url:
        raise RuntimeError("SUPABASE_URL is required")
    return url


def _require_anon_key() -> str:
    if not key:
        raise RuntimeError("SUPABASE_ANON_KEY or SUPABASE_KEY is required")
    return key


def _create_supabase() -> Client:
    return create_client(_require_supabase_url(), _require_anon_key())


def _create_supabase_admin() -> Client:
    admin_key = service_role_key or key
    if not admin_key:
        raise RuntimeError("SUPABASE_SERVICE_ROLE_KEY (or SUPABASE_KEY) is required")
    return create_client(_require_supabase_url(), admin_key)


# === 统一 Supabase 客户端（延迟初始化） ===
supabase: Client = _LazySupabaseClient(_create_supabase, name="supabase")  # type: ignore[assignment]

# === 管理端 Supabase 客户端（延迟初始化），所有工作流写入都走 service_role ===
supabase_admin: Client = _LazySupabaseClient(_create_supabase_admin, name="supabase_admin")  # type: ignore[assignment]


def create_user_supabase_client(access_token: str) -> Client:
    """
    以当前用户身份访问 PostgREST，通知列表/已读走 RLS。

    中文注释: 每个请求单独建 client 再注入 JWT；共享实例上调用 postgrest.auth 会让并发请求互相覆盖身份。
    """

    client = create_client(_require_supabase_url(), _require_anon_key())
    client.postgrest.auth(access_token)
    return client


def get_workflow_client() -> Client:
    """
    FastAPI 依赖：工作流服务使用的 service_role client（测试中通过 dependency_overrides 替换）。
    """
    return supabase_admin
