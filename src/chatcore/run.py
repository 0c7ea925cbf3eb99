"""
Chat Core Runner

Entry point for running the chat engine API.
"""
import logging
import os

import uvicorn

from .config import Config

logger = logging.getLogger("chatcore")


def run():
    """Run the chat engine"""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    logger.info(f"Starting Chat Core on {Config.API_HOST}:{Config.API_PORT}")

    uvicorn.run(
        "chatcore.app:app",
        host=Config.API_HOST,
        port=Config.API_PORT,
        reload=os.getenv("DEBUG", "false").lower() == "true"
    )


if __name__ == "__main__":
    run()
