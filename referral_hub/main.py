# referral_hub/main.py
import logging
import os

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from referral_hub.db.mongo import detect_transaction_support, init_db_indexes
from referral_hub.services import notify
from referral_hub.utils.errors import AppError

# Routers
from referral_hub.routes.ai import router as ai_router
from referral_hub.routes.analytics import router as analytics_router
from referral_hub.routes.auth import router as auth_router
from referral_hub.routes.business import router as business_router
from referral_hub.routes.campaign import router as campaign_router
from referral_hub.routes.customer import router as customer_router
from referral_hub.routes.referral import router as referral_router
from referral_hub.routes.reward import router as reward_router

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("referral_hub")

# ---------------------------
# Build FastAPI app
# ---------------------------
fastapi_app = FastAPI(title="Referral Hub API", version="1.0.0")

fastapi_app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",")],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------
# Error bodies
# ---------------------------
def _error(status_code: int, kind: str, message: str, headers=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": kind, "message": message},
        headers=headers,
    )


@fastapi_app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    return _error(exc.status_code, exc.kind, exc.message)


@fastapi_app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = f"{field}: {first.get('msg')}" if field else str(first.get("msg") or "Invalid request")
    return _error(422, "validation_error", message)


@fastapi_app.exception_handler(HTTPException)
async def http_error_handler(request: Request, exc: HTTPException):
    kind = {401: "unauthorized", 403: "forbidden", 404: "not_found"}.get(exc.status_code, "error")
    return _error(exc.status_code, kind, str(exc.detail), getattr(exc, "headers", None))


@fastapi_app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _error(500, "internal_error", "Something went wrong")


@fastapi_app.get("/health")
async def health_check():
    return {"status": "OK", "message": "Referral Hub API is running."}


# ---------------------------
# Routers
# ---------------------------
fastapi_app.include_router(auth_router)
fastapi_app.include_router(business_router)
fastapi_app.include_router(campaign_router)
fastapi_app.include_router(customer_router)
fastapi_app.include_router(referral_router)
fastapi_app.include_router(reward_router)
fastapi_app.include_router(analytics_router)
fastapi_app.include_router(ai_router)


# ---------------------------
# Startup / shutdown
# ---------------------------
@fastapi_app.on_event("startup")
async def on_startup():
    try:
        await detect_transaction_support()
        await init_db_indexes()
    except Exception:
        # the API still serves; writes will surface storage errors
        logger.exception("Database initialisation failed")


@fastapi_app.on_event("shutdown")
async def on_shutdown():
    await notify.drain()


app = fastapi_app
