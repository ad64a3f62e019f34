from contextlib import asynccontextmanager
from datetime import datetime, timezone
import math
import os
import threading
import time

from fastapi import FastAPI, Header
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from .config import get_cron_secret, load_settings
from .db.database import init_db
from .models.queue_entry import EntryStatus
from .core.actuation import ProvisioningError
from .core.activity_log import list_entry_logs
from .core.attempt_registry import AttemptRegistry, AttemptRunner
from .core.batch_driver import default_client_factory, run_batch_once
from .core.live_driver import LiveDriver, RemoteAttemptDispatcher
from .core.profile import build_applicant_profile, describe_missing_fields, validate_profile
from .core.profile_store import get_owner_profile, load_applicant_profile, save_owner_profile
from .core.queue_store import QueueStore
from .core.scheduler import BatchScheduler

settings = load_settings()
store = QueueStore.from_settings(settings)
client_factory = default_client_factory(settings)
registry = AttemptRegistry()
runner = AttemptRunner(registry, client_factory, settings)
live_dispatcher = RemoteAttemptDispatcher(
    settings.live.actuation_endpoint,
    timeout=settings.live.request_timeout_seconds,
)
# 实时模式按用户隔离：每个 owner 一个驱动
live_drivers: dict[str, LiveDriver] = {}
_live_lock = threading.Lock()
batch_scheduler = BatchScheduler(store, settings)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # 初始化数据库等资源
    init_db()
    yield
    for driver in list(live_drivers.values()):
        driver.disable()
    batch_scheduler.stop()


app = FastAPI(title="ApplyQueue - Application Queue & Auto-Apply", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _next_batch_run(now: float | None = None) -> str:
    interval = max(1.0, settings.batch.interval_seconds)
    now = time.time() if now is None else now
    next_ts = math.floor(now / interval + 1) * interval
    return datetime.fromtimestamp(next_ts, tz=timezone.utc).isoformat()


def _estimated_minutes(pending: int) -> float:
    # 每个批处理间隔最多处理一条
    return round(pending * settings.batch.interval_seconds / 60.0, 1)


# ----------------------------------------------------------------------
# 队列
# ----------------------------------------------------------------------


@app.post("/api/queue")
def enqueue_jobs(payload: dict):
    """
    把已批准的岗位加入队列。

    payload: {"owner_id": "...", "job": {...}} 或 {"owner_id": "...", "jobs": [{...}, ...]}
    """
    owner_id = (payload.get("owner_id") or "").strip()
    if not owner_id:
        return {"ok": False, "error": "owner_id is required"}
    jobs = payload.get("jobs") or ([payload["job"]] if payload.get("job") else [])
    if not jobs:
        return {"ok": False, "error": "job is required"}

    ids = []
    for job in jobs:
        try:
            ids.append(store.enqueue(owner_id, job))
        except ValueError as e:
            return {"ok": False, "error": str(e), "ids": ids}

    pending = store.stats(owner_id)["pending"]
    return {
        "ok": True,
        "ids": ids,
        "queued_count": pending,
        "estimated_minutes": _estimated_minutes(pending),
        "next_batch_run": _next_batch_run(),
    }


@app.get("/api/queue")
def list_queue(owner_id: str, status: EntryStatus | None = None):
    """列出 owner 的队列条目（新的在前）。"""
    return [entry.to_dict() for entry in store.list_by_owner(owner_id, status)]


@app.get("/api/queue/stats")
def queue_stats(owner_id: str):
    stats = store.stats(owner_id)
    current = store.current_processing(owner_id)
    return {
        "ok": True,
        "stats": stats,
        "current": current.to_dict() if current else None,
        "estimated_minutes": _estimated_minutes(stats["pending"]),
        "next_batch_run": _next_batch_run(),
    }


@app.post("/api/queue/{entry_id}/retry")
def retry_entry(entry_id: int):
    """failed 条目重新入队；其他状态拒绝。"""
    if store.get(entry_id) is None:
        return {"ok": False, "error": f"Entry {entry_id} not found"}
    if not store.retry(entry_id):
        return {"ok": False, "error": f"Entry {entry_id} is not retryable"}
    return {"ok": True, "entry": store.get(entry_id).to_dict()}


@app.delete("/api/queue/{entry_id}")
def cancel_entry(entry_id: int):
    """取消 pending 条目（落为 skipped，不删除记录）。"""
    if store.get(entry_id) is None:
        return {"ok": False, "error": f"Entry {entry_id} not found"}
    if not store.cancel(entry_id):
        return {"ok": False, "error": f"Entry {entry_id} is not pending"}
    return {"ok": True, "message": f"Entry {entry_id} cancelled"}


@app.get("/api/queue/{entry_id}/logs")
def get_entry_logs(entry_id: int):
    """返回指定条目的执行日志。"""
    return list_entry_logs(entry_id)


# ----------------------------------------------------------------------
# 批处理入口
# ----------------------------------------------------------------------


@app.get("/api/cron/apply")
def cron_apply(authorization: str | None = Header(default=None)):
    """外部定时器调用：每次最多处理一个 pending 条目。"""
    secret = get_cron_secret()
    if secret and authorization != f"Bearer {secret}":
        return JSONResponse({"ok": False, "error": "Unauthorized"}, status_code=401)
    summary = run_batch_once(store, client_factory, settings=settings)
    return {"ok": True, **summary.to_dict()}


@app.head("/api/cron/apply")
def cron_health():
    return Response(status_code=200)


@app.post("/api/control/start")
def start_batch():
    """启动本地批处理调度（替代外部定时器）"""
    batch_scheduler.start()
    return {"ok": True, "message": "batch scheduler started"}


@app.post("/api/control/pause")
def pause_batch():
    batch_scheduler.stop()
    return {"ok": True, "message": "paused"}


# ----------------------------------------------------------------------
# 远端投递尝试（实时驱动调用）
# ----------------------------------------------------------------------


@app.post("/api/agent/attempts")
def start_attempt(payload: dict):
    job = payload.get("job") or {}
    if not (job.get("apply_url") or "").strip():
        return JSONResponse({"ok": False, "error": "job.apply_url is required"}, status_code=400)

    profile = build_applicant_profile(payload.get("profile"))
    missing = validate_profile(profile)
    if missing:
        return JSONResponse(
            {"ok": False, "error": describe_missing_fields(missing), "missing_fields": missing},
            status_code=400,
        )

    try:
        session_id = runner.start(payload.get("entry_id"), job, profile)
    except ProvisioningError as e:
        return JSONResponse(
            {"ok": False, "error": f"Browser session failed: {e}"}, status_code=502
        )
    return {"ok": True, "session_id": session_id}


@app.get("/api/agent/attempts/{session_id}")
def get_attempt(session_id: str):
    record = registry.get(session_id)
    if record is None:
        return JSONResponse({"ok": False, "error": "Attempt not found"}, status_code=404)
    return {"ok": True, **record.to_dict()}


@app.get("/api/agent/health")
def agent_health():
    """供应方与 LLM 配置检查（不发起真实调用）。"""
    provider = settings.browser.provider
    browser_ready = provider == "local" or bool(
        os.getenv("BROWSERBASE_API_KEY") and os.getenv("BROWSERBASE_PROJECT_ID")
    )
    llm_ready = bool(os.getenv("OPENAI_API_KEY"))
    return {
        "ok": browser_ready and llm_ready,
        "provider": provider,
        "browser_configured": browser_ready,
        "llm_configured": llm_ready,
        "model": settings.llm.model,
        "active_attempts": registry.active_count(),
    }


# ----------------------------------------------------------------------
# 实时模式
# ----------------------------------------------------------------------


def get_live_driver(owner_id: str) -> LiveDriver:
    with _live_lock:
        driver = live_drivers.get(owner_id)
        if driver is None:
            driver = LiveDriver(store, live_dispatcher, settings)
            live_drivers[owner_id] = driver
        return driver


def _live_status(owner_id: str) -> dict:
    driver = live_drivers.get(owner_id)
    if driver is not None and driver.enabled:
        return driver.status()
    stats = store.stats(owner_id)
    return {
        "enabled": False,
        "user_id": owner_id,
        "pending_count": stats["pending"],
        "is_processing": driver.is_processing if driver else False,
        "current_job": None,
        "session_id": None,
        "stats": stats,
        "last_error": driver.last_error if driver else None,
    }


@app.post("/api/live/enable")
def enable_live(payload: dict):
    owner_id = (payload.get("owner_id") or "").strip()
    if not owner_id:
        return {"ok": False, "error": "owner_id is required"}
    profile = load_applicant_profile(owner_id)
    missing = validate_profile(profile)
    if missing:
        return {"ok": False, "error": describe_missing_fields(missing), "missing_fields": missing}
    driver = get_live_driver(owner_id)
    driver.enable(owner_id, profile)
    return {"ok": True, **driver.status()}


@app.post("/api/live/disable")
def disable_live(payload: dict):
    """停止拉取该用户的新条目；在途尝试会照常完成。"""
    owner_id = (payload.get("owner_id") or "").strip()
    if not owner_id:
        return {"ok": False, "error": "owner_id is required"}
    driver = live_drivers.get(owner_id)
    if driver is not None:
        driver.disable()
    return {"ok": True, **_live_status(owner_id)}


@app.get("/api/live/status")
def live_status(owner_id: str):
    return {"ok": True, **_live_status(owner_id)}


# ----------------------------------------------------------------------
# 用户资料
# ----------------------------------------------------------------------


@app.put("/api/users/{owner_id}/profile")
def put_profile(owner_id: str, payload: dict):
    record = save_owner_profile(owner_id, payload)
    missing = validate_profile(build_applicant_profile(record))
    return {"ok": True, "profile": record.to_dict(), "missing_fields": missing}


@app.get("/api/users/{owner_id}/profile")
def get_profile(owner_id: str):
    record = get_owner_profile(owner_id)
    missing = validate_profile(build_applicant_profile(record))
    if record is None:
        return {"ok": False, "error": "Profile not found", "missing_fields": missing}
    return {"ok": True, "profile": record.to_dict(), "missing_fields": missing}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("applyqueue.app:app", host="127.0.0.1", port=8000, reload=True)
