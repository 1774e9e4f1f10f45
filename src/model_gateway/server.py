"""Entrypoint for the model routing gateway."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

if __package__ in (None, ""):
    sys.path.insert(0, str(Path(__file__).resolve().parents[1]))  # pragma: no cover

from model_gateway import __version__
from model_gateway.config import load_settings
from model_gateway.logging_utils import configure_logging


def run_entrypoint() -> None:
    """Serve the gateway over HTTP with uvicorn."""
    settings = load_settings()
    configure_logging()
    from model_gateway.transport.http_server import create_http_app

    try:
        import uvicorn
    except ImportError as exc:
        raise RuntimeError("uvicorn is required to serve the gateway") from exc

    logging.info("Starting model routing gateway v%s", __version__)
    logging.info("Metadata catalog: %s", settings.metadata.catalog_path)
    app = create_http_app()
    uvicorn.run(
        app,
        host=settings.server.host,
        port=settings.server.port,
        ws="none",
        log_config=None,
    )


if __name__ == "__main__":  # pragma: no cover
    run_entrypoint()
