#!/usr/bin/env python3
"""
Startup script for Uvicorn that respects LOG_LEVEL from the app settings
"""
import os

import uvicorn

from tuckandtale.config import settings

log_level = settings.log_level.lower()
# Disable access log when log level is ERROR
access_log = log_level != "error"

# Get port from environment or default
port = int(os.getenv("PORT", "9876"))
host = os.getenv("HOST", "0.0.0.0")

# Start Uvicorn with configured log level
uvicorn.run(
    "tuckandtale.main:app",
    host=host,
    port=port,
    log_level=log_level,
    access_log=access_log
)
