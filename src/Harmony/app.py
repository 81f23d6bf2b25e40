"""FastAPI app exposing the interactions webhook."""

from __future__ import annotations

import asyncio
import time
import uuid
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, HTTPException, Request
from structlog.contextvars import bind_contextvars, clear_contextvars

from Harmony.client import HarmonyClient
from Harmony.config import load_settings
from Harmony.crypto import verify_ed25519
from Harmony.discord_schemas import Interaction, InteractionType
from Harmony.logging import redact_settings, setup_logging
from Harmony.metrics import get_counters, inc_counter
from Harmony.responder import RestPlatformAPI, respond_deferred, respond_deferred_update, respond_pong

log = structlog.get_logger()

DISCORD_SIG_HEADER = "X-Signature-Ed25519"
DISCORD_TS_HEADER = "X-Signature-Timestamp"


def create_app(client: HarmonyClient) -> FastAPI:
    settings = client.settings
    # Strong references to in-flight dispatch tasks
    tasks: set[asyncio.Task] = set()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        log.info("app.startup", config=redact_settings(settings))
        await client.start()
        try:
            yield
        finally:
            if tasks:
                await asyncio.gather(*tasks, return_exceptions=True)
            await client.close()
            aclose = getattr(client.platform, "aclose", None)
            if aclose is not None:
                await aclose()
            log.info("app.shutdown")

    app = FastAPI(title="Harmony", lifespan=lifespan)
    app.state.client = client
    app.state.tasks = tasks

    def schedule(coro) -> None:
        task = asyncio.create_task(coro)
        tasks.add(task)
        task.add_done_callback(tasks.discard)

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        """Assign a request_id, bind it to structlog context, and measure duration."""
        request_id = str(uuid.uuid4())
        start = time.perf_counter()
        bind_contextvars(request_id=request_id)
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            log.info(
                "http.request.completed",
                http_path=str(request.url.path),
                http_method=request.method,
                http_status_code=status_code,
                duration_ms=int((time.perf_counter() - start) * 1000),
            )
            clear_contextvars()

    @app.post("/interactions")
    async def interactions(request: Request):
        raw = await request.body()
        sig = request.headers.get(DISCORD_SIG_HEADER)
        ts = request.headers.get(DISCORD_TS_HEADER)
        if not sig or not ts:
            log.warning("discord.request.missing_signature", has_sig=bool(sig), has_ts=bool(ts))
            raise HTTPException(status_code=401, detail="missing signature headers")
        if not verify_ed25519(settings.discord_public_key, ts, raw, sig):
            log.warning("discord.request.bad_signature")
            inc_counter("http.bad_signature")
            raise HTTPException(status_code=401, detail="bad signature")

        try:
            inter = Interaction.model_validate_json(raw)
        except ValueError as err:
            preview = raw[:200].decode("utf-8", errors="replace")
            log.error("discord.request.parse_error", raw_body_preview=preview)
            raise HTTPException(status_code=400, detail="invalid interaction payload") from err

        if inter.type == InteractionType.PING:
            return respond_pong()

        if inter.is_command:
            command = client.commands.get(inter.command_name or "")
            # Acknowledge now; the dispatcher must not defer a second time
            schedule(client.handle_interaction(inter, acknowledged=True))
            return respond_deferred(ephemeral=bool(command and command.is_private))

        schedule(client.handle_interaction(inter, acknowledged=True))
        return respond_deferred_update()

    @app.get("/healthz")
    async def healthz():
        return {"status": "ok", "commands": len(client.commands), "plugins": sorted(client.plugins)}

    @app.get("/metrics")
    async def metrics():
        return get_counters()

    return app


def run() -> None:
    import uvicorn

    settings = load_settings()
    setup_logging(settings)
    client = HarmonyClient(RestPlatformAPI(settings), settings=settings)
    client.load_commands_package("Harmony.commands")
    uvicorn.run(create_app(client), host="0.0.0.0", port=settings.app_port)
