import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from kijumbe.config import settings
from kijumbe.database import init_db
from kijumbe.logging_config import get_logger, setup_logging
from kijumbe.routers import admin, webhook
from kijumbe.services.bot_service import BotService

setup_logging(settings.log_level)

app = FastAPI(
    title="Kijumbe Bot",
    description="WhatsApp bot for Kijumbe rotational savings groups",
    version="0.1.0",
)

cors_env = os.environ.get("CORS_ALLOW_ORIGINS", "*")
cors_origins = [origin.strip() for origin in cors_env.split(",") if origin.strip()]
if not cors_origins:
    cors_origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(webhook.router)
app.include_router(admin.router)

logger = get_logger("main")


def _is_env_enabled(value: str | None, default: bool = True) -> bool:
    if value is None:
        return default
    return value.strip().lower() not in {"0", "false", "no", "off"}


def _are_loops_enabled() -> bool:
    if os.environ.get("PYTEST_CURRENT_TEST"):
        return False
    return _is_env_enabled(os.environ.get("BOT_LOOPS_ENABLED"), default=True)


@app.on_event("startup")
async def start_bot() -> None:
    init_db()
    bot = BotService(settings)
    app.state.bot = bot
    if not bot.enabled or not _are_loops_enabled():
        logger.info("Bot loops not started", extra={"context": {"enabled": bot.enabled}})
        return
    if not settings.greenapi_configured:
        logger.warning("Green API credentials missing, polling will stop on first tick")
    elif settings.greenapi_webhook_url:
        result = await bot.client.set_webhook_url(settings.greenapi_webhook_url, settings.greenapi_webhook_secret)
        if not result.ok:
            logger.warning(
                "Webhook registration failed",
                extra={"context": {"error_code": result.error_code, "error": result.error}},
            )
    await bot.start()


@app.on_event("shutdown")
async def stop_bot() -> None:
    bot = getattr(app.state, "bot", None)
    if bot is None:
        return
    await bot.stop()


@app.get("/health")
async def health():
    return {"status": "ok"}
