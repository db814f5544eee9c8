import truststore

truststore.inject_into_ssl()


import asyncio
import logging
from contextlib import asynccontextmanager

import sentry_sdk
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse, RedirectResponse
from rich.logging import RichHandler
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import DISCORD_INVITE, DISCORD_TOKEN, HOST, LOG_LEVEL, PORT, SENTRY_DSN
from constants import COGS
from controller import twitch_router
from init import bot, build_services
from services.helper.helper import get_error_details, handle_error, set_error_reporter

logging.basicConfig(
    level=LOG_LEVEL, format="%(message)s", datefmt="[%X]", handlers=[RichHandler()]
)
logger = logging.getLogger(__name__)
logging.getLogger("httpx").setLevel(logging.WARNING)

if SENTRY_DSN:
    sentry_sdk.init(dsn=SENTRY_DSN, send_default_pii=False)


async def main() -> None:
    try:
        if not DISCORD_TOKEN:
            logger.error("DISCORD_TOKEN is not set, aborting startup")
            raise ValueError("DISCORD_TOKEN is not set in the environment variables.")
        bot.remove_command("help")
        results = await asyncio.gather(
            *(bot.load_extension(ext) for ext in COGS), return_exceptions=True
        )
        for ext, res in zip(COGS, results):
            if isinstance(res, Exception):
                error_details = get_error_details(res)
                logger.error(
                    f"Failed to load extension {ext} - Type: {error_details['type']}, Message: {error_details['message']}\nTraceback:\n{error_details['traceback']}"
                )
        await bot.start(DISCORD_TOKEN)
    except Exception as e:
        await handle_error(e, "Unhandled exception in main")


async def reconcile_subscriptions(app: FastAPI) -> None:
    try:
        report = await app.state.modlogs.registry.reconcile()
    except Exception as e:
        await handle_error(e, "Startup reconciliation failed")
        return
    for error in report.errors:
        await handle_error(error, "Startup reconciliation incomplete")


@asynccontextmanager
async def lifespan(app: FastAPI):
    services = build_services(bot)
    bot.modlogs = services
    app.state.modlogs = services
    set_error_reporter(services.chat.report)

    await services.start()
    bot_task = asyncio.create_task(main())
    reconcile_task = asyncio.create_task(reconcile_subscriptions(app))
    yield
    reconcile_task.cancel()
    await bot.close()
    bot_task.cancel()
    await services.stop()
    set_error_reporter(None)


app = FastAPI(lifespan=lifespan)
app.include_router(twitch_router)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> Response:
    if exc.status_code == 404:
        return JSONResponse(
            {"status": 404, "message": "We don't know what you're looking for."},
            status_code=404,
        )
    return JSONResponse(
        {"status": exc.status_code, "message": exc.detail}, status_code=exc.status_code
    )


@app.get("/")
async def root() -> Response:
    return RedirectResponse(DISCORD_INVITE)


@app.get("/health")
async def health() -> Response:
    return Response(status_code=204)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        app,
        host=HOST,
        port=PORT,
        log_level="info",
        access_log=True,
        log_config=None,
    )
