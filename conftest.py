"""Global pytest configuration.

Environment is pinned before any backend import so the module-level app
never targets a real database or LLM provider.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
# A blank key selects the deterministic stub client
os.environ["LLM_API_KEY"] = ""
