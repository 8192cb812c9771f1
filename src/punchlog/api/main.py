"""FastAPI application factory."""
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlmodel import SQLModel

from punchlog.config import ConfigurationError
from punchlog.db.engine import get_engine
from punchlog.api.routes import logs


def create_app(engine=None) -> FastAPI:
    """Build and return the FastAPI app.

    Args:
        engine: Engine to create tables on at startup. Defaults to the
            configured engine singleton.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Create tables on startup (idempotent)
        SQLModel.metadata.create_all(engine or get_engine())
        yield

    app = FastAPI(
        title="Punchlog API",
        description="Daily attendance log with spreadsheet mirror",
        version="0.1.0",
        lifespan=lifespan,
    )

    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(request: Request, exc: ConfigurationError):
        return JSONResponse(status_code=500, content={"success": False, "error": str(exc)})

    app.include_router(logs.router, prefix="/api", tags=["logs"])

    return app


# Module-level app instance for uvicorn
app = create_app()
