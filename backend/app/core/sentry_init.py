from typing import Any

from app.core.config import SentryConfig

_SENSITIVE_KEYS = {
    "password",
    "access_token",
    "refresh_token",
    "token",
    "jwt",
    "authorization",
    "cookie",
    "set-cookie",
    "supabase_key",
    "service_role_key",
}

# 中文注释: 审稿意见/给编辑的保密意见属于同行评议隐私内容，不得上报。
_CONFIDENTIAL_KEYS = {
    "comments",
    "comments_for_editor",
    "commentsforeditor",
    "reviewcomments",
    "decision_comments",
    "abstract",
}


def _scrub(value: Any) -> Any:
    """
    递归去除敏感字段与审稿意见内容。
    """
    if isinstance(value, dict):
        out: dict[str, Any] = {}
        for k, v in value.items():
            key_lower = str(k).strip().lower()
            if key_lower in _SENSITIVE_KEYS or key_lower in _CONFIDENTIAL_KEYS:
                out[str(k)] = "[Filtered]"
                continue
            out[str(k)] = _scrub(v)
        return out

    if isinstance(value, (list, tuple)):
        return [_scrub(v) for v in value]

    if isinstance(value, str) and len(value) > 5000:
        return "[Filtered]"

    return value


def _before_send(event: dict[str, Any], hint: dict[str, Any]) -> dict[str, Any] | None:
    request = event.get("request")
    if isinstance(request, dict):
        headers = request.get("headers")
        if isinstance(headers, dict):
            request["headers"] = {
                k: v for k, v in headers.items() if str(k).strip().lower() not in _SENSITIVE_KEYS
            }
        for field in ("cookies", "data", "body"):
            if field in request:
                request[field] = "[Filtered]"
        event["request"] = request

    for section in ("extra", "contexts"):
        obj = event.get(section)
        if isinstance(obj, dict):
            event[section] = _scrub(obj)

    return event


def init_sentry() -> bool:
    """
    初始化 Sentry。

    零崩溃原则：
    - 若未配置 DSN / 显式禁用，则直接返回 False。
    - 任何初始化异常都应在调用方 try/except 处理，不得阻塞启动。
    """
    cfg = SentryConfig.from_env()
    if not cfg.enabled or not cfg.dsn:
        return False

    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration

    options: dict[str, Any] = {
        "dsn": cfg.dsn,
        "environment": cfg.environment,
        "traces_sample_rate": cfg.traces_sample_rate,
        "integrations": [FastApiIntegration()],
        "send_default_pii": False,
        "before_send": _before_send,
        "max_request_body_size": "never",
    }
    try:
        sentry_sdk.init(**options)
    except Exception as exc:
        # 旧版本 sentry-sdk 可能不认识 max_request_body_size
        if "Unknown option" in str(exc) or "unexpected keyword argument" in str(exc):
            options.pop("max_request_body_size", None)
            sentry_sdk.init(**options)
        else:
            raise
    return True
