#!/usr/bin/env python3
"""
Startup script for the Family Inventory Sync backend
"""
import logging
import os
import sys
from pathlib import Path

# Get the directory where this script is located
backend_dir = Path(__file__).parent.absolute()

# Change to backend directory
os.chdir(backend_dir)

# Add backend directory to Python path
sys.path.insert(0, str(backend_dir))

from core.config import settings

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger("start_server")


def main():
    logger.info("Starting backend server...")
    try:
        import uvicorn

        logger.info(f"🚀 Starting server on http://{settings.HOST}:{settings.PORT}")
        uvicorn.run(
            "app:app",  # Import string instead of app instance for reload
            host=settings.HOST,
            port=settings.PORT,
            reload=settings.RELOAD,
            log_level=settings.LOG_LEVEL.lower(),
        )
    except ImportError as e:
        logger.error(f"❌ Import error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
