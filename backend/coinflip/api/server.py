"""FastAPI server: settlement trigger, current round, and admin endpoints."""

import logging
from contextlib import asynccontextmanager
from typing import Any, Optional
from uuid import UUID

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from coinflip import __version__
from coinflip.admin import AdminService
from coinflip.auth import (
    AdminAccessError,
    AdminGuard,
    InvalidRequestError,
    Principal,
    SupabaseClient,
    create_supabase_client,
    require_admin,
)
from coinflip.config import Settings, get_settings
from coinflip.observability import initialize_logfire
from coinflip.rounds import RoundStore, SettlementCycleError, SettlementError
from coinflip.settlement import create_settlement_driver

logger = logging.getLogger(__name__)

CORS_HEADERS = ["authorization", "x-client-info", "apikey", "content-type"]


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[RoundStore] = None,
    supabase: Optional[SupabaseClient] = None,
) -> FastAPI:
    """
    Build the API application.

    ``store`` and ``supabase`` default to the ones described by settings; tests
    pass an in-memory store and a client on a mock transport.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        driver = create_settlement_driver(settings, store=store)
        client = supabase or create_supabase_client(settings)

        initialize_logfire(settings, app=app, engine=getattr(driver.store, "engine", None))

        async with client:
            app.state.driver = driver
            app.state.admin_service = AdminService(client, settings.admin)
            app.state.admin_guard = AdminGuard(client)
            logger.info(
                f"Coinflip API ready (store={driver.store.backend}, "
                f"round_duration={settings.rounds.duration_seconds}s)"
            )

            yield

            logger.info("Shutting down Coinflip API")
            await driver.store.close()

    app = FastAPI(title="Coinflip Settlement API", version=__version__, lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=CORS_HEADERS,
    )

    @app.exception_handler(AdminAccessError)
    async def admin_access_error_handler(request: Request, exc: AdminAccessError):
        logger.error(f"Error: {exc.message}")
        return JSONResponse({"error": exc.message}, status_code=400)

    @app.get("/health", tags=["Health"])
    async def health_check(request: Request) -> dict[str, str]:
        store_ok = await request.app.state.driver.store.ping()
        return {
            "status": "healthy" if store_ok else "degraded",
            "service": "coinflip-api",
            "version": __version__,
            "store": request.app.state.driver.store.backend,
        }

    @app.api_route("/settle-coinflip", methods=["GET", "POST"], tags=["Settlement"])
    async def settle_coinflip(request: Request):
        """Settle every expired round and return the current one."""
        logger.info("Checking for rounds to settle...")
        try:
            report = await request.app.state.driver.run_settlement_cycle()
        except SettlementCycleError as e:
            logger.error(f"Error in settle-coinflip ({e.operation}): {e}")
            return JSONResponse({"success": False, "error": str(e)}, status_code=500)
        return report.to_response()

    @app.get("/current-round", tags=["Settlement"])
    async def current_round(request: Request):
        try:
            round_ = await request.app.state.driver.ensure_current_round()
        except SettlementCycleError as e:
            return JSONResponse({"success": False, "error": str(e)}, status_code=500)
        return round_.model_dump(mode="json")

    @app.api_route("/admin-get-users", methods=["GET", "POST"], tags=["Admin"])
    async def admin_get_users(
        request: Request,
        principal: Principal = Depends(require_admin),
    ):
        users = await request.app.state.admin_service.list_users()
        return {"users": [u.model_dump(mode="json", by_alias=True) for u in users]}

    @app.post("/admin-reset-password", tags=["Admin"])
    async def admin_reset_password(
        request: Request,
        principal: Principal = Depends(require_admin),
    ):
        payload = await _json_body(request)
        logger.info(f"Admin {principal.id} resetting password for {payload.get('userId')}")
        return await request.app.state.admin_service.reset_password(payload)

    @app.post("/admin-settle-round", tags=["Admin"])
    async def admin_settle_round(
        request: Request,
        principal: Principal = Depends(require_admin),
    ):
        """Settle one expired round now, optionally forcing heads or tails."""
        payload = await _json_body(request)
        try:
            round_id = UUID(str(payload.get("roundId") or ""))
        except ValueError:
            raise InvalidRequestError("Missing or invalid roundId")

        logger.info(f"Admin {principal.id} settling round {round_id}")
        try:
            outcome = await request.app.state.driver.settle_round(
                round_id, result=payload.get("result")
            )
        except SettlementError as e:
            raise InvalidRequestError(str(e)) from e
        return outcome.model_dump(mode="json")

    return app


async def _json_body(request: Request) -> dict[str, Any]:
    try:
        payload = await request.json()
    except ValueError:
        raise InvalidRequestError("Request body must be JSON")
    if not isinstance(payload, dict):
        raise InvalidRequestError("Request body must be a JSON object")
    return payload
