"""FastAPI application for the tadpole task store."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from .. import __version__
from ..config import Settings
from ..storage.container import Container
from .router import create_router


def create_app(
    project_dir: Optional[Path] = None,
    enable_cors: bool = True,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        project_dir: Project directory holding ``.tadpole/``. Defaults to cwd.
        enable_cors: Whether to enable CORS.
        settings: Pre-resolved settings; resolved from env/config when omitted.

    Returns:
        Configured FastAPI app.
    """
    app = FastAPI(
        title="Tadpole",
        description="Ordered task list with tags",
        version=__version__,
    )

    if enable_cors:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.state.project_dir = Path(project_dir or Path.cwd()).resolve()
    app.state.settings = settings
    app.state.container = None

    def _get_container() -> Container:
        if app.state.container is None:
            app.state.container = Container(app.state.project_dir, settings=app.state.settings)
            logger.info("Serving store at {}", app.state.container.store.path)
        return app.state.container

    @app.exception_handler(RequestValidationError)
    async def _invalid_body(request: Request, exc: RequestValidationError) -> JSONResponse:
        # Malformed bodies share the 400 status of domain validation failures.
        errors = exc.errors()
        first = errors[0] if errors else {}
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = first.get("msg", "Invalid request")
        detail = f"{field}: {message}" if field else message
        return JSONResponse(status_code=400, content={"detail": detail})

    app.include_router(create_router(_get_container))
    return app
