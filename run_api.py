#!/usr/bin/env python
"""
Cycle Tracker API Server Runner.

Usage:
    python run_api.py

Reads `.env` when present; see valuation_engine.config for settings.
"""

import os
import sys
import logging

import uvicorn
from dotenv import load_dotenv

load_dotenv()

# Setup logging
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format='%(asctime)s | %(levelname)s | %(name)s | %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)

logger = logging.getLogger(__name__)


def main():
    """Run the API server."""
    host = os.getenv("API_HOST", "0.0.0.0")
    port = int(os.getenv("API_PORT", os.getenv("PORT", "8000")))
    reload = os.getenv("ENVIRONMENT", "production") == "development"

    logger.info(f"Starting Cycle Tracker API on {host}:{port}")

    try:
        uvicorn.run(
            "valuation_api.api:app",
            host=host,
            port=port,
            reload=reload,
            log_level="info",
            access_log=True,
        )
    except Exception as e:
        logger.error(f"Failed to start API: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
