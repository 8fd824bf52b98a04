"""
Uvicorn runner for the Archlog API.

Usage:
    python run.py

Environment variables (set in .env file):
    DEBUG=true - Debug logging and auto-reload
    PORT=8000 - Server port (default: 8000)
    HOST=127.0.0.1 - Server host (default: 127.0.0.1)
"""

import uvicorn
from archlog.config import get_settings

if __name__ == "__main__":
    import os

    settings = get_settings()

    host = os.getenv("HOST", "127.0.0.1")
    port = int(os.getenv("PORT", "8000"))

    # Match uvicorn's own logging to the application level
    log_level = "debug" if settings.debug else "info"

    print(f"Starting {settings.app_name} server on {host}:{port} (log level {log_level})")
    print(f"Primary model: {settings.primary_model}, fallback: {settings.fallback_model}")
    print(f"Daily extraction limit per repository: {settings.daily_extraction_limit}")
    print(f"Docs available at: http://{host}:{port}/docs")

    uvicorn.run(
        "archlog.main:app",
        host=host,
        port=port,
        reload=settings.debug,
        log_level=log_level,
        access_log=True,
    )
