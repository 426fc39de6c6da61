from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from reben.api.v1.router import router as v1_router
from reben.core.errors import ConfigurationError, PayloadSerializationError
from reben.core.logging import configure_logging, get_logger
from reben.core.settings import get_settings
from reben.middleware.request_id import RequestIDMiddleware

configure_logging()
settings = get_settings()
logger = get_logger("api.errors")

app = FastAPI(title="REBEN Notifications API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
    expose_headers=["X-Request-ID"],
)
app.add_middleware(RequestIDMiddleware)

app.include_router(v1_router, prefix="/api/v1")


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
    logger.warning("request.rejected", extra={"path": request.url.path, "error_type": type(exc).__name__})
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})


@app.exception_handler(PayloadSerializationError)
async def payload_error_handler(request: Request, exc: PayloadSerializationError) -> JSONResponse:
    logger.warning("request.rejected", extra={"path": request.url.path, "error_type": type(exc).__name__})
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})


@app.get("/healthz")
def root_healthz() -> dict[str, str]:
    return {"status": "ok"}
