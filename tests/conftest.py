import os
import sys
from pathlib import Path

import pytest

# Add the src directory to the Python path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

# Set environment variables for testing
os.environ["DB_PATH"] = "test.db"
os.environ["DATA_DIR"] = "/tmp/courseshelf-test-data"
os.environ["LOG_LEVEL"] = "DEBUG"
os.environ["LOG_USE_COLOR"] = "false"
os.environ["STREAM_CHUNK_SIZE_KB"] = "1"


@pytest.fixture
def media_root(tmp_path):
    """A media root directory with a 1000-byte sample video."""
    root = tmp_path / "media"
    root.mkdir()
    (root / "lecture.mp4").write_bytes(bytes(i % 256 for i in range(1000)))
    return root
