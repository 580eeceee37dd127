"""Pytest configuration for tests.

Sets up Python path and routes log files to a temp dir before any project
module creates its logger.
"""

import os
import sys
import tempfile
from pathlib import Path
from typing import Any, Dict

import pytest

os.environ.setdefault(
    "UNHEARDPATH_LOG_DIR", str(Path(tempfile.gettempdir()) / "unheardpath-test-logs")
)

# Add project root to Python path so imports work correctly
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))


@pytest.fixture
def point_feature() -> Dict[str, Any]:
    return {
        "type": "Feature",
        "geometry": {"type": "Point", "coordinates": [28.97801, 41.00861]},
        "properties": {"name": "Hagia Sophia"},
    }
