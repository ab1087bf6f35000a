"""Location discovery: fallback scraping, duplicate detection, batched storage."""

from .workflows import *  # noqa: F401,F403
from .workflows import __all__ as _workflow_exports
from .storage import *  # noqa: F401,F403
from .storage import __all__ as _storage_exports

__version__ = "0.1.0"

__all__ = [*_workflow_exports, *_storage_exports]
