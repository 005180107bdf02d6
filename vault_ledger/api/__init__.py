"""
Vault Ledger API Application Factory
"""

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .accounts import router as accounts_router
from .vaults import router as vaults_router
from .transfers import router as transfers_router
from .goals import router as goals_router
from .. import __version__
from ..errors import (
    ConflictError, InsufficientFundsError, LockedError, NotFoundError,
    ValidationError, VaultLedgerError,
)


ERROR_STATUS_CODES = {
    ValidationError: 400,
    InsufficientFundsError: 400,
    NotFoundError: 404,
    ConflictError: 409,
    LockedError: 423,
}


def error_status_code(error: VaultLedgerError) -> int:
    for cls in type(error).__mro__:
        if cls in ERROR_STATUS_CODES:
            return ERROR_STATUS_CODES[cls]
    return 400


async def handle_ledger_error(request: Request, exc: VaultLedgerError) -> JSONResponse:
    return JSONResponse(status_code=error_status_code(exc), content=exc.to_dict())


def create_app() -> FastAPI:
    """Create and configure the FastAPI application"""
    app = FastAPI(
        title="Vault Ledger API",
        description="Savings vaults with fees, pension locks, vesting bonuses and goals",
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

    app.add_exception_handler(VaultLedgerError, handle_ledger_error)

    app.include_router(accounts_router, prefix="/accounts", tags=["Accounts"])
    app.include_router(vaults_router, prefix="/vaults", tags=["Vaults"])
    app.include_router(transfers_router, prefix="/transfers", tags=["Transfers"])
    app.include_router(goals_router, prefix="/goals", tags=["Goals"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "vault_ledger_api",
            "version": __version__
        }

    @app.get("/")
    async def get_api_info():
        """Get API information"""
        return {
            "name": "Vault Ledger API",
            "version": __version__,
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "accounts": "/accounts",
                "vaults": "/vaults",
                "transfers": "/transfers",
                "goals": "/goals",
            }
        }

    return app


app = create_app()


def run_server(host: str = "0.0.0.0", port: int = 8090, debug: bool = False):
    """Run the FastAPI server"""
    uvicorn.run(
        "vault_ledger.api:app",
        host=host,
        port=port,
        reload=debug,
        log_level="info"
    )
