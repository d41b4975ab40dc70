import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlmodel import Session
from starlette.middleware.cors import CORSMiddleware

from api.api_v1.api import api_router
from core.config import settings
from core.db import engine, init_db
from core.errors import VaultServiceError
from log import setup_logging
from services.protocol import build_protocol
from services.state_store import load_protocol, save_protocol

logger = logging.getLogger(__name__)

STATUS_BY_CATEGORY = {
    "validation": 400,
    "authorization": 403,
    "state": 409,
    "external_call": 502,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging("api")
    init_db()
    protocol = build_protocol(settings)
    with Session(engine) as session:
        load_protocol(session, protocol)
    app.state.protocol = protocol
    yield
    with Session(engine) as session:
        save_protocol(session, protocol)


app = FastAPI(
    title=settings.PROJECT_NAME,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    lifespan=lifespan,
)

# Set all CORS enabled origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:4000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(VaultServiceError)
async def vault_service_exception_handler(request: Request, exc: VaultServiceError):
    status_code = STATUS_BY_CATEGORY.get(exc.category, 400)
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc, exc_info=exc)
    return JSONResponse(
        status_code=status_code,
        content={
            "error": exc.category,
            "validation": {
                "error_code": exc.error_code,
                "error_message": exc.error_message,
            },
        },
    )


@app.exception_handler(Exception)
async def exception_handler(request: Request, exc: Exception):
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"error": str(exc)},
    )


app.include_router(api_router, prefix=settings.API_V1_STR)


if __name__ == "__main__":
    uvicorn.run(app, host=settings.SERVER_HOST, port=settings.SERVER_PORT)
