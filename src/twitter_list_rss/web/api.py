"""FastAPI HTTP API serving the RSS feed."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from twitter_list_rss import __version__
from twitter_list_rss.scheduler import PollInProgress

if TYPE_CHECKING:
    from twitter_list_rss.service import FeedService

logger = logging.getLogger(__name__)

APP_NAME = "Twitter List RSS Converter"
RSS_MEDIA_TYPE = "application/rss+xml"


def create_app(service: FeedService) -> Any:
    """Create and return the FastAPI application.

    Args:
        service: The feed service backing every route.

    Returns:
        A FastAPI application instance.
    """
    from fastapi import FastAPI  # noqa: PLC0415
    from fastapi.responses import JSONResponse, Response  # noqa: PLC0415

    app = FastAPI(title=APP_NAME, version=__version__)

    @app.get("/")
    def index() -> JSONResponse:
        return JSONResponse(
            {
                "name": APP_NAME,
                "version": __version__,
                "endpoints": {
                    "rss": "/rss",
                    "status": "/status",
                    "refresh": "POST /refresh",
                    "health": "/health",
                },
            }
        )

    @app.get("/rss")
    def rss_feed() -> Response:
        try:
            document = service.get_feed_document()
        except Exception:
            logger.exception("Error serving RSS feed")
            return JSONResponse({"error": "Failed to generate RSS feed"}, status_code=500)
        return Response(content=document, media_type=RSS_MEDIA_TYPE)

    @app.get("/status")
    def status() -> JSONResponse:
        try:
            payload = service.get_status()
        except Exception:
            logger.exception("Error getting status")
            return JSONResponse({"error": "Failed to get status"}, status_code=500)
        return JSONResponse(payload)

    @app.post("/refresh")
    def refresh() -> JSONResponse:
        logger.info("Manual refresh requested")
        try:
            result = service.refresh()
        except PollInProgress as exc:
            return JSONResponse({"error": str(exc)}, status_code=409)
        if result is None:
            message = service.scheduler.state.last_error or "Poll failed"
            return JSONResponse({"error": "Refresh failed", "message": message}, status_code=500)
        return JSONResponse(
            {
                "success": True,
                "message": f"Fetched {result.new_item_count} new tweets",
                "result": result.to_dict(),
            }
        )

    @app.get("/health")
    def health() -> JSONResponse:
        return JSONResponse({"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()})

    return app
