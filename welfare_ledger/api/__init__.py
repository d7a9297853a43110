"""
Welfare Ledger API Application Factory
"""

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from .interest import router as interest_router
from .ledger_entries import router as ledger_entries_router
from .summary import router as summary_router


def create_app() -> FastAPI:
    """Create and configure the FastAPI application"""
    app = FastAPI(
        title="Welfare Ledger API",
        description="Loan allocation, quarterly interest and financial summaries for a welfare association",
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

    app.include_router(interest_router, prefix="/interest", tags=["Interest"])
    app.include_router(ledger_entries_router, prefix="/ledger-entries", tags=["Ledger Entries"])
    app.include_router(summary_router, prefix="/summary", tags=["Summary"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "welfare_ledger_api",
            "version": __version__
        }

    return app


def run_server(host: str = "0.0.0.0", port: int = 8090, debug: bool = False):
    """Run the FastAPI server"""
    uvicorn.run(
        "welfare_ledger.api:create_app",
        factory=True,
        host=host,
        port=port,
        reload=debug,
        log_level="info"
    )
