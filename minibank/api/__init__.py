"""
MiniBank API Application Factory
"""

from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn

from .. import __version__
from ..errors import BankingError
from ..config import get_config
from ..logging_config import get_logger, setup_logging
from .auth import BankingSystem, get_banking_system, set_banking_system
from .users import router as users_router
from .accounts import router as accounts_router


logger = get_logger("minibank.api")


async def banking_error_handler(request: Request, exc: BankingError) -> JSONResponse:
    """Render any BankingError as {"error", "kind", ...details}"""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def create_app(system: Optional[BankingSystem] = None) -> FastAPI:
    """Create and configure the FastAPI application"""
    app = FastAPI(
        title="MiniBank API",
        description="Personal banking: deposits, withdrawals, transfers and history",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(BankingError, banking_error_handler)

    if system is not None:
        app.dependency_overrides[get_banking_system] = lambda: system

    app.include_router(users_router, prefix="/auth", tags=["Auth"])
    app.include_router(accounts_router, tags=["Accounts"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "minibank_api",
            "version": __version__
        }

    return app


def run_server(host: Optional[str] = None, port: Optional[int] = None):
    """Run the FastAPI server with settings from MiniBankConfig"""
    config = get_config()
    setup_logging(config.log_level, config.log_format, config.log_file)
    uvicorn.run(
        create_app(),
        host=host or config.api_host,
        port=port or config.api_port,
        log_level=config.log_level.lower()
    )


__all__ = ["create_app", "run_server", "BankingSystem", "get_banking_system", "set_banking_system"]
