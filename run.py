#!/usr/bin/env python3
"""
Main entrypoint: start the HTTP API (task views, commands, sync).
Run with: python run.py
Or: uvicorn web_app:app
"""
from __future__ import annotations

import logging
import sys

# Ensure app loggers (taskmind.api, sync, sheet_store, ...) emit to the same stream as uvicorn
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    stream=sys.stderr,
    force=True,
)

from config import load as load_config


def main() -> None:
    import uvicorn

    config = load_config()
    if not config.sheet_url:
        logging.getLogger("run").warning("sheet_url is not set; tasks will not load until it is configured")
    uvicorn.run(
        "web_app:app",
        host="0.0.0.0",
        port=config.web_ui_port,
        reload=False,
    )


if __name__ == "__main__":
    main()
