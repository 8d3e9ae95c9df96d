"""
FastAPI server for the transaction fuzzer

Provides REST API for:
- Target enumeration
- Starting, cancelling and observing a campaign
- Results and findings
"""
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from txfuzz.api.deps import get_controller
from txfuzz.api.routes import ROUTERS
from txfuzz.config import settings
from txfuzz.logging import setup_logging

setup_logging("api")
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # a campaign still running at shutdown is cancelled and awaited
    controller = app.dependency_overrides.get(get_controller, get_controller)()
    if controller.running:
        controller.cancel()
        await controller.wait()


app = FastAPI(
    title="Transaction Fuzzer",
    description="Black-box boundary-value fuzzer for transaction-code request/response interfaces",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware for web UI
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

for router in ROUTERS:
    app.include_router(router)



if __name__ == "__main__":
    import uvicorn

    logger.info(
        "starting_fuzzer_api",
        host=settings.api_host,
        port=settings.api_port,
    )

    uvicorn.run(
        app,
        host=settings.api_host,
        port=settings.api_port,
        log_level="info",
    )
