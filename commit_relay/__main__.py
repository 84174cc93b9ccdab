"""Run the relay: ``python -m commit_relay``."""

import uvicorn

from commit_relay.app import create_app
from commit_relay.config import CONFIG

if __name__ == "__main__":
    uvicorn.run(create_app(), host="0.0.0.0", port=CONFIG["port"], log_level="info")
