"""
Ledger API Application Factory
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
import uvicorn

from .. import __version__
from ..config import LedgerConfig, get_config
from ..logging_config import setup_logging
from ..storage import StorageInterface
from .accounts import router as accounts_router
from .errors import add_error_handlers
from .system import LedgerSystem


def create_app(config: Optional[LedgerConfig] = None,
               storage: Optional[StorageInterface] = None) -> FastAPI:
    """Create and configure the FastAPI application"""
    config = config or get_config()
    setup_logging(config.log_level, config.log_format, log_file=config.log_file)

    system = LedgerSystem(config, storage=storage)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        system.close()

    app = FastAPI(
        title="Core Ledger API",
        description="Account transactions with overdraft limits and statements",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )
    app.state.ledger = system

    add_error_handlers(app)
    app.include_router(accounts_router, tags=["Accounts"])

    # Health check endpoint
    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "core_ledger_api",
            "version": __version__
        }

    # Root endpoint
    @app.get("/")
    async def get_api_info():
        """Get API information"""
        return {
            "name": "Core Ledger API",
            "version": __version__,
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "transactions": "/accounts/{id}/transactions",
                "statement": "/accounts/{id}/statement",
            }
        }

    return app


def run_server(host: Optional[str] = None, port: Optional[int] = None, debug: bool = False):
    """Run the FastAPI server"""
    config = get_config()
    uvicorn.run(
        "core_ledger.api:create_app",
        factory=True,
        host=host or config.api_host,
        port=port or config.api_port,
        reload=debug,
        log_level=config.log_level.lower()
    )
