import shutil
import sys
from pathlib import Path

import pytest

# Ensure pytest can see the main code
# This is needed if you run pytest from the root project folder
sys.path.insert(0, str(Path(__file__).parent.parent))

from table_impact.settings import ConfigManager

TEST_DATA_DIR = Path(__file__).parent / "test_data"


@pytest.fixture
def monolith(tmp_path):
    """A private copy of the sample monolith, so tests may edit its files."""
    root = tmp_path / "monolith"
    shutil.copytree(TEST_DATA_DIR / "monolith", root)
    return root


@pytest.fixture
def config(tmp_path):
    """
    A ConfigManager writing its caches under tmp_path.
    - workers=1 keeps indexing in the test process.
    - no naming policy file, so the configured conventions apply.
    """
    return ConfigManager(cache_dir=tmp_path / "cache", workers=1, naming_policy_file=None)


@pytest.fixture
def write_java(tmp_path):
    """Writes Java source lines to a file under tmp_path and returns its path."""
    def _write(relative_path, lines):
        path = tmp_path / "java" / relative_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return path
    return _write
