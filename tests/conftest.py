"""Pytest configuration for filevault tests."""
import sys
from pathlib import Path

# Add src/ to path for src-layout imports
_PROJECT_ROOT = Path(__file__).parent.parent
_SRC = _PROJECT_ROOT / 'src'
if str(_SRC) not in sys.path:
    sys.path.insert(0, str(_SRC))

import pytest

from filevault.settings import Settings
from filevault.storage import LocalFileStorage


@pytest.fixture
def storage_root(tmp_path):
    """A small storage tree.

    storage/
      .avatars/u1.png
      docs/readme.txt
      docs/guide.md
      docs/sub/note.txt
      photos/
      report.pdf
    """
    root = tmp_path / 'storage'
    (root / '.avatars').mkdir(parents=True)
    (root / '.avatars' / 'u1.png').write_bytes(b'\x89PNG')
    (root / 'docs' / 'sub').mkdir(parents=True)
    (root / 'docs' / 'readme.txt').write_text('hello')
    (root / 'docs' / 'guide.md').write_text('# guide')
    (root / 'docs' / 'sub' / 'note.txt').write_text('note')
    (root / 'photos').mkdir()
    (root / 'report.pdf').write_bytes(b'%PDF-1.4 report')
    return root


@pytest.fixture
def storage(storage_root):
    return LocalFileStorage(storage_root)


@pytest.fixture
def settings(tmp_path, storage_root):
    return Settings(
        base_url='https://files.example.com',
        storage_path=str(storage_root),
        database_path=str(tmp_path / 'data' / 'shares.db'),
        log_format='console',
    )
