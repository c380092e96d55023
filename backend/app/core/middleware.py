import time
import logging
from typing import Any, Optional

from fastapi import FastAPI, Request, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

# === 结构化日志配置 ===
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("journalflow")


class WorkflowError(HTTPException):
    """
    带稳定错误码的 HTTPException（INVALID_STAGE / SUBMISSION_DECLINED / ...）。

    中文注释: error_code 供前端/调用方做程序化分支，detail 仅用于展示。
    """

    def __init__(self, status_code: int, detail: str, *, error_code: Optional[str] = None):
        super().__init__(status_code=status_code, detail=detail)
        self.error_code = error_code


def error_body(detail: Any, *, error_code: Optional[str] = None) -> dict[str, Any]:
    body: dict[str, Any] = {"success": False, "error": detail if isinstance(detail, str) else str(detail)}
    if error_code:
        body["errorCode"] = error_code
    return body


def register_exception_handlers(app: FastAPI) -> None:
    """
    统一错误响应结构：{"success": false, "error": "...", "errorCode"?: "..."}
    """

    @app.exception_handler(StarletteHTTPException)
    async def _http_exception_handler(_request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(exc.detail, error_code=getattr(exc, "error_code", None)),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def _validation_exception_handler(_request: Request, exc: RequestValidationError):
        # 中文注释: 请求体校验失败统一返回 400（字段级错误放在 details）
        details = [
            {
                "path": [str(p) for p in (err.get("loc") or ()) if p != "body"],
                "message": err.get("msg"),
                "code": err.get("type"),
            }
            for err in exc.errors()
        ]
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": "Invalid input", "details": details},
        )


class ExceptionHandlerMiddleware(BaseHTTPMiddleware):
    """
    统一异常捕获中间件：请求耗时日志 + 兜底 500
    """
    async def dispatch(self, request: Request, call_next):
        start_time = time.time()
        try:
            response = await call_next(request)
            process_time = time.time() - start_time
            logger.info(f"Method: {request.method} Path: {request.url.path} Status: {response.status_code} Time: {process_time:.4f}s")
            return response
        except HTTPException as exc:
            return JSONResponse(
                status_code=exc.status_code,
                content=error_body(exc.detail, error_code=getattr(exc, "error_code", None)),
            )
        except Exception as e:
            logger.error(f"Unhandled Exception: {str(e)}", exc_info=True)
            return JSONResponse(
                status_code=500,
                content=error_body("Internal server error"),
            )
