"""
Entry point for running the voice assistant server.

Usage:
    python -m voice_server

Starts the FastAPI app on http://0.0.0.0:8000 (HOST / PORT override).
"""
import os

import uvicorn

from logging_setup import setup_logging

if __name__ == "__main__":
    setup_logging(
        level=os.getenv("LOG_LEVEL", "INFO"),
        use_json=os.getenv("LOG_JSON", "true").lower() in ("1", "true", "yes"),
    )

    uvicorn.run(
        "voice_server.app:create_app",
        factory=True,
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        log_level=os.getenv("LOG_LEVEL", "info").lower(),
    )
