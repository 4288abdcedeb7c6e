"""Shared fixtures for diskdive tests."""

import pytest


@pytest.fixture
def sample_tree(tmp_path):
    """Root with a.txt (100 B), b.txt (300 B) and an empty directory c/."""
    root = tmp_path / "root"
    root.mkdir()
    (root / "a.txt").write_bytes(b"x" * 100)
    (root / "b.txt").write_bytes(b"x" * 300)
    (root / "c").mkdir()
    return root
