import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from plan_assistant.api.plans import plans_controller
from plan_assistant.config import get_settings
from plan_assistant.utils.errors import PlanAssistantError

load_dotenv()


def _log_level() -> str:
    if os.getenv("LOG_LEVEL"):
        return os.getenv("LOG_LEVEL", "INFO").upper()
    return "INFO" if os.getenv("APP_ENV", "").lower() == "production" else "DEBUG"


logging.basicConfig(
    level=_log_level(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Refuse to start without a usable API key and model.
    settings = get_settings()
    logger.info(
        f"Plan assistant ready: model={settings.openai_model} env={settings.app_env} "
        f"devmode={settings.devmode}"
    )
    yield
    logger.info("Shutting down plan assistant")


app = FastAPI(
    title="Plan Assistant API",
    version="1.0.0",
    description="Turns a project goal into a phased plan and explains it.",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=[
        "Retry-After",
        "X-RateLimit-Limit",
        "X-RateLimit-Remaining",
        "X-RateLimit-Reset",
        "X-Request-ID",
    ],
)


@app.exception_handler(PlanAssistantError)
async def plan_assistant_error_handler(request: Request, exc: PlanAssistantError):
    prefix = f"[{request.url.path}:{exc.request_id}]"
    if exc.status_code >= 500:
        logger.error(f"{prefix} {type(exc).__name__}: {exc.message}")
    else:
        logger.warning(f"{prefix} {type(exc).__name__}: {exc.message}")
    headers = exc.headers()
    if exc.request_id:
        headers["X-Request-ID"] = exc.request_id
    return JSONResponse(status_code=exc.status_code, content=exc.to_body(), headers=headers)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    message = "Method not allowed" if exc.status_code == 405 else str(exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": message},
        headers=getattr(exc, "headers", None),
    )


@app.get("/health")
async def health():
    return {"ok": True, "ts": datetime.now(timezone.utc).isoformat()}


app.include_router(plans_controller.router)


def run():
    import uvicorn

    uvicorn.run(
        "plan_assistant.main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
    )


if __name__ == "__main__":
    run()
