import pytest
from fastapi import FastAPI, HTTPException
from httpx import ASGITransport, AsyncClient

from app.core.config import WorkflowConfig
from app.core.middleware import ExceptionHandlerMiddleware, WorkflowError, register_exception_handlers
from app.core.sentry_init import _before_send, _scrub, init_sentry
from app.services.workflow_common import coerce_row_id, is_missing_column_error


def _app() -> FastAPI:
    app = FastAPI()
    register_exception_handlers(app)
    app.add_middleware(ExceptionHandlerMiddleware)

    @app.get("/workflow-error")
    async def _wf():
        raise WorkflowError(400, "Bad stage", error_code="INVALID_STAGE")

    @app.get("/boom")
    async def _boom():
        raise RuntimeError("unexpected")

    return app


@pytest.mark.asyncio
async def test_error_envelope_and_uncaught_500():
    async with AsyncClient(transport=ASGITransport(app=_app()), base_url="http://test") as ac:
        res = await ac.get("/workflow-error")
        assert res.status_code == 400
        assert res.json() == {"success": False, "error": "Bad stage", "errorCode": "INVALID_STAGE"}

        res = await ac.get("/boom")
        assert res.status_code == 500
        assert res.json() == {"success": False, "error": "Internal server error"}


def test_workflow_config_defaults_and_overrides(monkeypatch):
    for key in ("REVIEW_RESPONSE_DUE_DAYS", "REVIEW_DUE_DAYS", "WORKFLOW_OPEN_ROUND_RPC", "WORKFLOW_EDITOR_ROLES"):
        monkeypatch.delenv(key, raising=False)
    cfg = WorkflowConfig.from_env()
    assert (cfg.response_due_days, cfg.review_due_days) == (3, 14)
    assert cfg.editor_roles == ("admin", "editor", "manager")
    assert cfg.open_round_rpc is None

    monkeypatch.setenv("REVIEW_DUE_DAYS", "-2")
    monkeypatch.setenv("WORKFLOW_OPEN_ROUND_RPC", " open_review_round ")
    monkeypatch.setenv("WORKFLOW_EDITOR_ROLES", "Editor, chief")
    cfg = WorkflowConfig.from_env()
    assert cfg.review_due_days == 14
    assert cfg.open_round_rpc == "open_review_round"
    assert cfg.editor_roles == ("editor", "chief")


def test_coerce_row_id():
    assert coerce_row_id("12") == 12
    assert coerce_row_id(3) == 3
    assert coerce_row_id("6F9619FF-8B86-D011-B42D-00C04FC964FF") == "6f9619ff-8b86-d011-b42d-00c04fc964ff"
    for bad in ("", "0", "-1", "abc", None, True, 0):
        with pytest.raises(HTTPException):
            coerce_row_id(bad)


def test_missing_column_error_detection():
    assert is_missing_column_error(RuntimeError("column submissions.current_round does not exist"), column="current_round")
    assert not is_missing_column_error(RuntimeError("timeout"), column="current_round")


def test_sentry_scrubs_review_comments_and_tokens():
    event = {
        "request": {"headers": {"Authorization": "Bearer x", "Accept": "json"}, "data": {"comments": "secret"}},
        "extra": {"payload": {"comments_for_editor": "private", "round": 2, "token": "t"}},
    }
    out = _before_send(event, {})
    assert out["request"]["headers"] == {"Accept": "json"}
    assert out["request"]["data"] == "[Filtered]"
    assert out["extra"]["payload"] == {"comments_for_editor": "[Filtered]", "round": 2, "token": "[Filtered]"}
    assert _scrub(["x" * 6000]) == ["[Filtered]"]


def test_init_sentry_disabled_without_dsn(monkeypatch):
    monkeypatch.delenv("SENTRY_DSN", raising=False)
    monkeypatch.delenv("SENTRY_ENABLED", raising=False)
    assert init_sentry() is False
