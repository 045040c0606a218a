from __future__ import annotations

import uvicorn
from fastapi import FastAPI
from fastapi.responses import Response

from .publish import MemoryTarget


def create_app(target: MemoryTarget, title: str = "mdpress") -> FastAPI:
    """Build an app that serves the pages published to ``target``."""
    app = FastAPI(title=title, docs_url=None, redoc_url=None, openapi_url=None)

    @app.get("/{path:path}")
    def page(path: str) -> Response:
        status, content_type, body = target.response("/" + path)
        return Response(content=body, status_code=status, media_type=content_type)

    return app


def serve(target: MemoryTarget, host: str, port: int, title: str = "mdpress") -> None:
    print(f"Serving on http://{host}:{port}/ (Ctrl+C to stop)")
    uvicorn.run(create_app(target, title), host=host, port=port, log_level="warning")
