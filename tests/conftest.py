import pytest
import sqlite3
from pathlib import Path
from PIL import Image
from photo_catalog.database.schema import init_schema
from photo_catalog.database.ops import DBOperations

@pytest.fixture
def conn():
    """Returns an in-memory SQLite connection with the schema initialized."""
    c = sqlite3.connect(":memory:")
    init_schema(c)
    try:
        yield c
    finally:
        c.close()

@pytest.fixture
def db_ops(conn):
    """Returns a DBOperations instance attached to the in-memory DB."""
    return DBOperations(conn)

@pytest.fixture
def make_image():
    """
    Factory writing a real PNG. Distinct sizes give distinct dimensions and
    byte counts, so each (width, height) pair is its own file signature.
    """
    def _make(path: Path, width: int = 16, height: int = 12, color=(200, 40, 40)) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        Image.new("RGB", (width, height), color).save(path, format="PNG")
        return path
    return _make
