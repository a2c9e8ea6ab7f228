"""
docarchive — Main Reflex application entry point.

Boot sequence:
    1. _init_archive()  — load docarchive.yaml, configure logging, event logs
    2. Create rx.App() and register the explorer and archive manager routes
"""

import logging

import reflex as rx

from docarchive.ui.archive_manager import archive_manager_page
from docarchive.ui.explorer import explorer_page, member_explorer_page

logger = logging.getLogger("docarchive.startup")

_initialized = False


def _init_archive() -> None:
    """Load config and start the structured event logs."""
    global _initialized
    if _initialized:
        return
    _initialized = True

    try:
        from docarchive.engine.config import load_config
        from docarchive.engine.logging import init_logging

        config = load_config()
        logging.basicConfig(level=getattr(logging, config.logging.level.upper(), logging.INFO))
        init_logging(config.logging.directory, config.logging.retention_days)
        logger.info(f"{config.name} {config.version} ({config.environment}) store={config.store.base_url}")
    except Exception as e:
        logger.error(f"Failed to initialize docarchive: {e}", exc_info=True)


_init_archive()

app = rx.App()

app.add_page(explorer_page, route="/resources", title="Resources")
app.add_page(member_explorer_page, route="/members/resources", title="Member Resources")
app.add_page(archive_manager_page, route="/admin/archive", title="Archive Manager")

# Redirect / → /resources
app.add_page(lambda: rx.fragment(), route="/", on_load=rx.redirect("/resources"))
