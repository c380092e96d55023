import asyncio
import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# 在应用启动前加载环境变量
load_dotenv()

logger = logging.getLogger("journalflow.main")

_SENTRY_ENABLED = False
try:
    from app.core.sentry_init import init_sentry

    _SENTRY_ENABLED = init_sentry()
    if _SENTRY_ENABLED:
        logger.info("[sentry] enabled")
except Exception as e:
    # 中文注释: 零崩溃原则: Sentry 任何异常不得阻塞启动
    logger.warning("[sentry] init failed (ignored): %s", e)

from app.api.v1 import notifications, production, reviews, submissions, workflow
from app.core.config import WorkflowConfig
from app.core.middleware import ExceptionHandlerMiddleware, register_exception_handlers
from app.lib.api_client import supabase_admin
from app.services.schema_capabilities import get_schema_capabilities


@asynccontextmanager
async def lifespan(app: FastAPI):
    # 中文注释:
    # - 启动时探测一次云端 schema（current_round 列 / publication_schedule 表 / status 编码）。
    # - 探测失败不阻塞启动；首次写入时会再懒加载探测。
    if WorkflowConfig.from_env().probe_schema_on_startup:
        try:
            caps = await asyncio.to_thread(get_schema_capabilities, supabase_admin)
            logger.info("[schema] %s", caps)
        except Exception as e:
            logger.warning("[schema] startup probe failed (ignored): %s", e)
    yield


app = FastAPI(
    title="JournalFlow API",
    description="Editorial workflow backend: submissions, review rounds, decisions, publication",
    version="1.0.0",
    lifespan=lifespan,
)


def _parse_frontend_origins() -> list[str]:
    """
    解析允许跨域的前端 Origins。

    中文注释:
    - 本地默认: http://localhost:3000
    - 生产/预发: 通过 FRONTEND_ORIGIN 或 FRONTEND_ORIGINS 注入（逗号分隔）
    """
    origins: list[str] = []

    single = (os.environ.get("FRONTEND_ORIGIN") or "").strip()
    if single:
        origins.append(single.rstrip("/"))

    many = (os.environ.get("FRONTEND_ORIGINS") or "").strip()
    if many:
        for part in many.split(","):
            o = (part or "").strip().rstrip("/")
            if o:
                origins.append(o)

    if not origins:
        origins = ["http://localhost:3000"]

    return list(dict.fromkeys(origins))


# === 中间件配置 ===
# 1. 跨域资源共享 (CORS) - 允许前端访问
app.add_middleware(
    CORSMiddleware,
    allow_origins=_parse_frontend_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 2. 统一异常处理：错误响应 {success:false, error, errorCode?} + 兜底 500
register_exception_handlers(app)
app.add_middleware(ExceptionHandlerMiddleware)

# === 路由注册 ===
app.include_router(submissions.router, prefix="/api/v1")
app.include_router(reviews.router, prefix="/api/v1")
app.include_router(workflow.router, prefix="/api/v1")
app.include_router(production.router, prefix="/api/v1")
app.include_router(notifications.router, prefix="/api/v1")


@app.get("/")
async def root():
    return {"message": "JournalFlow API is running", "docs": "/docs"}
