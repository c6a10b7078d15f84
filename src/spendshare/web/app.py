"""FastAPI application entry point."""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from spendshare import __version__
from spendshare.core.errors import SpendShareError
from spendshare.core.logging_setup import configure_logging
from spendshare.web.routes import budgets, categories, groups, invitations, profile, transactions

configure_logging()

app = FastAPI(title="SpendShare", version=__version__)


app.include_router(groups.router, prefix="/groups", tags=["groups"])
app.include_router(invitations.router, prefix="/invitations", tags=["invitations"])
app.include_router(categories.router, prefix="/categories", tags=["categories"])
app.include_router(transactions.router, prefix="/transactions", tags=["transactions"])
app.include_router(budgets.router, prefix="/budgets", tags=["budgets"])
app.include_router(profile.router, prefix="/profile", tags=["profile"])


@app.exception_handler(SpendShareError)
async def spendshare_error_handler(request: Request, exc: SpendShareError) -> JSONResponse:
    """Map the service error taxonomy onto HTTP status codes."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error": type(exc).__name__},
    )


@app.get("/health")
async def health() -> dict:
    return {"status": "ok", "version": __version__}
