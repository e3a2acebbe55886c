#!/usr/bin/env python3
"""
Browser Install Script
Makes sure a Chromium build is available before the service starts.

Skips the download when CHROME_EXECUTABLE_PATH or the Playwright
browsers cache already provides one.
"""

import logging
import os
import subprocess
import sys

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.core.config import settings
from app.services.browser import resolve_executable


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S"
)
logger = logging.getLogger("install_browser")

INSTALL_TIMEOUT = 180


def main() -> int:
    logger.info(f"Playwright browsers path: {settings.PLAYWRIGHT_BROWSERS_PATH}")

    executable = resolve_executable(settings)
    if executable:
        logger.info(f"Chrome already available at {executable}, skipping install")
        return 0

    logger.info("No Chrome found, installing Playwright Chromium...")
    env = dict(os.environ, PLAYWRIGHT_BROWSERS_PATH=settings.PLAYWRIGHT_BROWSERS_PATH)
    try:
        subprocess.run(
            [sys.executable, "-m", "playwright", "install", "chromium"],
            env=env,
            check=True,
            timeout=INSTALL_TIMEOUT,
        )
    except (subprocess.CalledProcessError, subprocess.TimeoutExpired) as e:
        logger.error(f"Chromium install failed: {e}")
        return 1

    executable = resolve_executable(settings)
    if not executable:
        # Playwright may still launch its bundled build from the default cache
        logger.warning("Install finished but no executable was found in the browsers path")
        return 0

    logger.info(f"Chromium installed at {executable}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
