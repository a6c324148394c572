"""
Runtime configuration read from the environment.
"""

import os

TALETURN_ENV = os.getenv("TALETURN_ENV", "development")
ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "*").split(",")

# Extra reload-and-reapply attempts after a concurrency conflict
MAX_CONFLICT_RETRIES = int(os.getenv("TALETURN_MAX_CONFLICT_RETRIES", "3"))

LOG_LEVEL = os.getenv("TALETURN_LOG_LEVEL", "INFO")

HOST = os.getenv("TALETURN_HOST", "127.0.0.1")
PORT = int(os.getenv("TALETURN_PORT", "8000"))
