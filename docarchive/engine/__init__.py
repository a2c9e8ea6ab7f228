"""docarchive Engine — Configuration, errors, caller context, event logging."""

from docarchive.engine.config import ArchiveConfig, get_config, load_config  # noqa: F401
from docarchive.engine.context import CallerContext  # noqa: F401
from docarchive.engine.errors import ArchiveError  # noqa: F401

__all__ = [
    "ArchiveConfig",
    "get_config",
    "load_config",
    "CallerContext",
    "ArchiveError",
]
