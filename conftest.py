from __future__ import annotations

import sys
from pathlib import Path


def pytest_configure() -> None:
    """Make `import diag_agent...` work without an editable install."""
    repo_root = str(Path(__file__).resolve().parent)
    if repo_root not in sys.path:
        sys.path.insert(0, repo_root)
