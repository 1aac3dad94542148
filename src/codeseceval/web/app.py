"""FastAPI application factory for the CodeSecEval HTTP API."""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from codeseceval import __version__
from codeseceval.app import AppContext
from codeseceval.config import SecEvalConfig
from codeseceval.errors import (
    ConcurrencyLimitExceeded,
    DuplicateKey,
    NotFound,
    Protected,
    SecEvalError,
    ValidationError,
)

_STATUS_CODES: dict[type[SecEvalError], int] = {
    NotFound: 404,
    DuplicateKey: 409,
    Protected: 403,
    ConcurrencyLimitExceeded: 429,
    ValidationError: 422,
}


async def create_app(
    config: SecEvalConfig | None = None,
    in_memory: bool = False,
    **context_kwargs,
) -> FastAPI:
    """Build and return the FastAPI application."""
    config = config or SecEvalConfig.load()

    app = FastAPI(
        title="CodeSecEval",
        version=__version__,
        docs_url="/api/docs",
    )

    # One context per process, shared by every request
    app.state.ctx = await AppContext.create(config, in_memory=in_memory, **context_kwargs)

    @app.exception_handler(SecEvalError)
    async def seceval_error(request: Request, exc: SecEvalError) -> JSONResponse:
        status = next(
            (code for cls, code in _STATUS_CODES.items() if isinstance(exc, cls)),
            400,
        )
        content: dict = {"detail": str(exc), "error": type(exc).__name__}
        if isinstance(exc, ValidationError):
            content["problems"] = exc.problems
        return JSONResponse(status_code=status, content=content)

    # Register API routers
    from codeseceval.web.api.history import router as history_router
    from codeseceval.web.api.live import router as live_router
    from codeseceval.web.api.rules import router as rules_router
    from codeseceval.web.api.scans import router as scans_router

    app.include_router(scans_router, prefix="/api")
    app.include_router(rules_router, prefix="/api")
    app.include_router(history_router, prefix="/api")
    app.include_router(live_router, prefix="/api")

    @app.on_event("startup")
    async def startup() -> None:
        app.state.ctx.start_housekeeping()

    @app.on_event("shutdown")
    async def shutdown() -> None:
        await app.state.ctx.close()

    return app
