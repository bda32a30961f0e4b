"""Marketplace web application entry point.

Usage:
    uvicorn src.app:app --host 0.0.0.0 --port 8000 --reload
"""

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# The domain is initialized at module level so uvicorn workers share it.
from marketplace.domain import marketplace

marketplace.init()

from marketplace.api.app import create_app  # noqa: E402

app = create_app()
