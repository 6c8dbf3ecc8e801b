"""
Railway entrypoint for the property marketplace engine.

This is the ONLY Uvicorn entrypoint used in production.
Binds to 0.0.0.0:$PORT as required by Railway.
"""

import logging
import os

import uvicorn

from utils.config import Config

if __name__ == "__main__":
    Config.load().configure_logging()
    port = int(os.getenv("PORT", "8000"))
    logging.getLogger(__name__).info("Starting property marketplace engine on port %d", port)

    # Import app here to ensure clean module loading
    from web.app import app

    uvicorn.run(app, host="0.0.0.0", port=port)
