#!/usr/bin/env python3
"""
Run the Blokus arena web API server.

Set BLOKUS_LOG_DIR to also write a log file, BLOKUS_LOG_LEVEL to change
verbosity and BLOKUS_CONFIG to load game settings from a YAML file.
"""

import logging
import os

import uvicorn

from utils.config import log_level_from_env
from utils.logging_setup import setup_logging

if __name__ == "__main__":
    level = log_level_from_env()
    log_dir = os.getenv("BLOKUS_LOG_DIR")
    if log_dir:
        log_file = setup_logging(level, log_dir=log_dir, run_name="server")
        print(f"Logging to {log_file}")
    else:
        logging.basicConfig(
            level=level,
            format='[%(asctime)s] %(levelname)s: %(message)s',
            datefmt='%H:%M:%S'
        )

    print("Starting Blokus arena server...")
    print("Server will be available at: http://localhost:8000")
    print("API documentation at:  http://localhost:8000/docs")
    print("WebSocket endpoint: ws://localhost:8000/ws/games/{game_id}?player_id=...")
    print("Press Ctrl+C to stop the server")

    uvicorn.run(
        "webapi.app:app",
        host="0.0.0.0",
        port=8000,
        log_level=logging.getLevelName(level).lower()
    )
