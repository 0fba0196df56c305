import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles
from pymongo import MongoClient
from starlette.middleware.sessions import SessionMiddleware

import admin
import api
import database
from config import Settings
from payments import RazorpayGateway
from security import AdminLoginRequired, ensure_default_admin

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, mongo_client: Optional[MongoClient] = None) -> FastAPI:
    settings = settings or Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # connect -> indexes -> bootstrap admin -> serve; a failed connection aborts startup
        try:
            database.connect(settings.mongodb_uri, settings.database_name, mongo_client)
        except Exception:
            logger.critical("MongoDB connection failed", exc_info=True)
            raise
        database.ensure_indexes()
        ensure_default_admin(database.get_db(), settings)
        yield
        database.disconnect()

    app = FastAPI(title="Aquarium Storefront Backend", lifespan=lifespan)
    app.state.settings = settings
    app.state.gateway = None
    if settings.gateway_configured:
        app.state.gateway = RazorpayGateway(
            settings.razorpay_key_id, settings.razorpay_key_secret, settings.razorpay_api_url
        )
    else:
        logger.warning("Razorpay keys not set, payment endpoints are disabled")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["*"],
    )
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.session_secret,
        max_age=24 * 60 * 60,
        same_site="lax",
    )

    os.makedirs(settings.upload_dir, exist_ok=True)
    app.mount("/uploads", StaticFiles(directory=settings.upload_dir), name="uploads")

    app.include_router(api.router)
    app.include_router(admin.router)
    app.include_router(admin.console)

    @app.exception_handler(AdminLoginRequired)
    async def admin_login_required(request: Request, exc: AdminLoginRequired):
        return RedirectResponse("/", status_code=303)

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        if not errors:
            return JSONResponse(status_code=400, content={"detail": "Invalid request"})
        err = errors[0]
        field = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        return JSONResponse(status_code=400, content={"detail": f"{field}: {err['msg']}" if field else err["msg"]})

    @app.exception_handler(Exception)
    async def server_error(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        if request.url.path.startswith("/api"):
            return JSONResponse(status_code=500, content={"detail": "Server error"})
        return PlainTextResponse("Server error", status_code=500)

    @app.get("/test")
    def test_database():
        response = {
            "backend": "✅ Running",
            "database": "❌ Not Available",
            "database_name": settings.database_name,
            "payment_gateway": "✅ Configured" if settings.gateway_configured else "❌ Not Configured",
            "connection_status": "Not Connected",
            "collections": [],
        }
        try:
            if database.db is not None:
                response["database"] = "✅ Connected & Working"
                response["connection_status"] = "Connected"
                response["collections"] = database.db.list_collection_names()[:10]
        except Exception as e:
            response["database"] = f"❌ Error: {str(e)[:80]}"
        return response

    return app


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    settings = Settings.from_env()
    uvicorn.run(create_app(settings), host="0.0.0.0", port=settings.port)
