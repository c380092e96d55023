import os
from dataclasses import dataclass
from typing import Optional


def _env_bool(key: str, default: bool) -> bool:
    raw = os.environ.get(key)
    if raw is None:
        return default
    lowered = raw.strip().lower()
    return lowered in {"1", "true", "yes", "y", "on"}


def _env_int(key: str, default: int) -> int:
    raw = (os.environ.get(key) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_list(key: str, default: list[str]) -> list[str]:
    raw = (os.environ.get(key) or "").strip()
    if not raw:
        return list(default)
    return [part.strip().lower() for part in raw.split(",") if part.strip()]


@dataclass(frozen=True)
class AppConfig:
    """
    Application environment config.
    """
    env: str  # 'development', 'staging', 'production'
    is_staging: bool
    supabase_url: str
    supabase_key: str

    @staticmethod
    def from_env() -> "AppConfig":
        env = (os.environ.get("APP_ENV") or "development").strip().lower()
        is_staging = env == "staging"

        # 中文注释: staging 与 production 共用同一套变量名，由部署平台切换 SUPABASE_URL。
        supabase_url = (os.environ.get("SUPABASE_URL") or "").strip()
        supabase_key = (os.environ.get("SUPABASE_SERVICE_ROLE_KEY") or "").strip()

        return AppConfig(
            env=env,
            is_staging=is_staging,
            supabase_url=supabase_url,
            supabase_key=supabase_key
        )

# Global Config Instance
app_config = AppConfig.from_env()


@dataclass(frozen=True)
class WorkflowConfig:
    """
    编辑流程（审稿轮次 / 审稿邀请）相关配置

    中文注释:
    1) 审稿邀请的默认期限与原 OJS 行为一致：3 天内回复、14 天内完成审稿。
    2) editor_roles 决定谁可以做编辑决定、发布、代审稿人回复邀请。
    3) open_round_rpc 非空时，"送审"会通过一个 Postgres 函数在单事务内完成
       （新建 review round + 更新 submission stage），否则退化为两次独立写入。
    """

    response_due_days: int
    review_due_days: int
    editor_roles: tuple[str, ...]
    privileged_roles: tuple[str, ...]
    open_round_rpc: Optional[str]
    probe_schema_on_startup: bool

    @staticmethod
    def from_env() -> "WorkflowConfig":
        response_due_days = _env_int("REVIEW_RESPONSE_DUE_DAYS", 3)
        review_due_days = _env_int("REVIEW_DUE_DAYS", 14)
        if response_due_days <= 0:
            response_due_days = 3
        if review_due_days <= 0:
            review_due_days = 14

        editor_roles = tuple(_env_list("WORKFLOW_EDITOR_ROLES", ["admin", "editor", "manager"]))
        privileged_roles = tuple(
            _env_list("WORKFLOW_PRIVILEGED_ROLES", ["admin", "editor", "manager"])
        )
        open_round_rpc = (os.environ.get("WORKFLOW_OPEN_ROUND_RPC") or "").strip() or None

        return WorkflowConfig(
            response_due_days=response_due_days,
            review_due_days=review_due_days,
            editor_roles=editor_roles,
            privileged_roles=privileged_roles,
            open_round_rpc=open_round_rpc,
            probe_schema_on_startup=_env_bool("WORKFLOW_PROBE_SCHEMA", True),
        )


@dataclass(frozen=True)
class SentryConfig:
    """
    Sentry 监控配置（可选）。
    """

    enabled: bool
    dsn: Optional[str]
    environment: str
    traces_sample_rate: float

    @staticmethod
    def from_env() -> "SentryConfig":
        dsn = (os.environ.get("SENTRY_DSN") or "").strip() or None
        enabled = _env_bool("SENTRY_ENABLED", bool(dsn))
        environment = (
            os.environ.get("SENTRY_ENVIRONMENT") or os.environ.get("APP_ENV") or "development"
        ).strip()

        rate_raw = (os.environ.get("SENTRY_TRACES_SAMPLE_RATE") or "0.0").strip()
        try:
            traces_sample_rate = float(rate_raw)
        except ValueError:
            traces_sample_rate = 0.0

        return SentryConfig(
            enabled=enabled,
            dsn=dsn,
            environment=environment,
            traces_sample_rate=traces_sample_rate,
        )


def get_admin_emails() -> set[str]:
    """
    ADMIN_EMAILS（逗号分隔）中的用户自动获得 admin/editor 权限，便于本地/演示测试。
    """
    raw = os.environ.get("ADMIN_EMAILS", "")
    return {e.strip().lower() for e in raw.split(",") if e.strip()}
