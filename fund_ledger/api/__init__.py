"""
Fund Ledger API Application Factory
"""

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from ..config import get_config
from ..logging_config import setup_logging
from .accounts import router as accounts_router
from .dues import router as dues_router
from .loans import router as loans_router
from .reports import router as reports_router
from .schedule import router as schedule_router


def create_app() -> FastAPI:
    """Create and configure the FastAPI application"""
    app = FastAPI(
        title="Fund Ledger API",
        description="Installment ledger for fund accounts, loans and monthly dues",
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

    app.include_router(accounts_router, prefix="/accounts", tags=["Accounts"])
    app.include_router(dues_router, prefix="/accounts/{key}/dues", tags=["Dues"])
    app.include_router(loans_router, prefix="/accounts/{key}/loan", tags=["Loans"])
    app.include_router(reports_router, prefix="/reports", tags=["Reports"])
    app.include_router(schedule_router, prefix="/due-schedule", tags=["Due Schedule"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "fund_ledger_api",
            "version": __version__
        }

    @app.get("/")
    async def get_api_info():
        """Get API information"""
        return {
            "name": "Fund Ledger API",
            "version": __version__,
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "accounts": "/accounts",
                "dues": "/accounts/{key}/dues",
                "loan": "/accounts/{key}/loan",
                "reports": "/reports",
                "due_schedule": "/due-schedule"
            }
        }

    return app


app = create_app()


def run_server(host: str = None, port: int = None, debug: bool = False):
    """Run the FastAPI server"""
    config = get_config()
    setup_logging(config.log_level, log_format=config.log_format)
    uvicorn.run(
        "fund_ledger.api:app",
        host=host or config.api_host,
        port=port or config.api_port,
        reload=debug,
        log_level=config.log_level.lower()
    )
