#!/usr/bin/env python3
"""
ZirCats backend web server
Usage: uvicorn zircats.web_server:create_app --factory --port 3001
       python -m zircats.web_server
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from zircats import __version__
from zircats.chain import ChainConnector, load_abi
from zircats.config import Settings, configure_logging, load_settings
from zircats.errors import ZirCatsError
from zircats.generate import SvgGenerator
from zircats.listener import TextEventListener
from zircats.reconciler import SvgReconciler
from zircats.store import Store

logger = logging.getLogger(__name__)

# ── Models ────────────────────────────────────────────────────────────────────

class GenerateSvgRequest(BaseModel):
    theme: str


class PublishSvgRequest(BaseModel):
    svg: str


# ── Services ──────────────────────────────────────────────────────────────────

@dataclass
class Services:
    store: Store
    connector: ChainConnector
    reconciler: SvgReconciler
    listener: TextEventListener
    generator: SvgGenerator


def build_services(
    settings: Settings,
    *,
    store: Optional[Store] = None,
    connector: Optional[ChainConnector] = None,
    generator: Optional[SvgGenerator] = None,
) -> Services:
    store = store or Store.from_uri(settings.mongodb_uri, settings.database_name)
    connector = connector or ChainConnector(
        settings.rpc_url,
        settings.contract_address,
        load_abi(settings.abi_path),
    )
    generator = generator or SvgGenerator(settings.anthropic_model, settings.max_tokens)
    reconciler = SvgReconciler(connector, store, interval=settings.fetch_interval)
    listener = TextEventListener(
        connector,
        store,
        poll_interval=settings.listener_poll_interval,
        max_retries=settings.listener_max_retries,
        retry_delay=settings.listener_retry_delay,
        max_block_range=settings.listener_max_block_range,
    )
    return Services(store, connector, reconciler, listener, generator)


def _error(message: str) -> JSONResponse:
    return JSONResponse(status_code=500, content={"error": message})


# ── App ───────────────────────────────────────────────────────────────────────

def create_app(
    settings: Optional[Settings] = None,
    *,
    services: Optional[Services] = None,
    run_background: bool = True,
) -> FastAPI:
    settings = settings or load_settings()
    configure_logging(settings.log_level)
    services = services or build_services(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        try:
            await services.store.ensure_indexes()
        except ZirCatsError as exc:
            logger.error("Could not prepare MongoDB: %s", exc)

        tasks: list[asyncio.Task] = []
        if run_background:
            tasks.append(asyncio.create_task(services.reconciler.run_forever(), name="svg-reconciler"))
            tasks.append(asyncio.create_task(services.listener.run(), name="textset-listener"))
        try:
            yield
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            await services.store.close()

    limiter = Limiter(key_func=get_remote_address)
    app = FastAPI(title="ZirCats Backend", version=__version__, lifespan=lifespan)
    app.state.limiter = limiter
    app.state.services = services
    app.state.settings = settings
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type", "Authorization"],
    )

    # ── Routes ────────────────────────────────────────────────────────────────

    @app.post("/generate-svg")
    @limiter.limit(settings.generate_rate_limit)
    async def generate_svg(request: Request, req: GenerateSvgRequest):
        logger.info("Received theme: %s", req.theme)
        try:
            svg = await services.generator.generate(req.theme)
        except Exception:
            logger.exception("Error generating SVG")
            return _error("Failed to generate SVG")
        return {"svg": svg}

    @app.post("/publish-svg")
    async def publish_svg(req: PublishSvgRequest):
        try:
            inserted_id = await services.store.publish_svg(req.svg)
        except ZirCatsError:
            logger.exception("Error publishing SVG")
            return _error("Failed to publish SVG")
        return {"success": True, "id": inserted_id}

    @app.get("/get-svgs")
    async def get_svgs():
        try:
            return await services.store.list_svgs()
        except ZirCatsError:
            logger.exception("Error fetching SVGs")
            return _error("Failed to fetch SVGs")

    @app.get("/fetch-svgs")
    async def fetch_svgs():
        try:
            report = await services.reconciler.reconcile()
        except ZirCatsError:
            logger.exception("Error running SVG fetch")
            return _error("Failed to initiate SVG fetch")
        return {
            "message": "SVG fetch process completed" if report.connected else report.summary(),
            "inserted": report.inserted,
            "skipped": report.skipped,
            "failed": len(report.failed),
        }

    @app.get("/get-cat-text/{token_id}")
    async def get_cat_text(token_id: str):
        try:
            return await services.store.get_cat_text(token_id)
        except ZirCatsError:
            logger.exception("Error fetching cat text")
            return _error("Failed to fetch cat text")

    return app


def main() -> None:
    import uvicorn

    settings = load_settings()
    uvicorn.run(create_app(settings), host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    main()
