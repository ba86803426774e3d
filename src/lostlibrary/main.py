#!/usr/bin/env python3
# -*- coding: utf-8 -*-
from __future__ import annotations

import argparse
import logging
import sys

from .app import LostLibraryApp
from .backend.manager import get_backend
from .config import load_config, setup_logging, storage_path
from .storage import DeviceStorage

logger = logging.getLogger("lostlibrary")


# --- Entrypoint ---
def main() -> None:
    parser = argparse.ArgumentParser(description="LOSTLIBRARY terminal client")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--theme", type=str, help="Set theme for this run.")
    args = parser.parse_args()

    debug_path = setup_logging(args.debug)
    if debug_path:
        print(f"Debug logging enabled: {debug_path}", file=sys.stderr)

    config = load_config()
    theme_name = args.theme or config.get("theme") or "dracula"
    logger.info("Using theme: %s", theme_name)

    try:
        backend = get_backend(config)
        storage = DeviceStorage(storage_path(config))
        app = LostLibraryApp(backend=backend, storage=storage, theme=theme_name, config=config)
        app.run()
    except Exception as e:
        logger.exception("Application crashed: %s", e)
        print(f"Application crashed: {e}", file=sys.stderr)


if __name__ == "__main__":
    main()
