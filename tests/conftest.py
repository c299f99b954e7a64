import os

import pytest

# charts are written to files only
os.environ.setdefault("MPLBACKEND", "Agg")


@pytest.fixture
def sample_file(tmp_path):
    path = tmp_path / "huffman-example.txt"
    path.write_bytes(b"a ab bza")
    return path
