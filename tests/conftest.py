"""
Shared pytest fixtures for Simple Backup tests.

This module provides fixtures for:
- A Console writing to an in-memory stream with scripted prompt answers
- Source trees to back up
- Backup destinations and configurations
"""

import io

import pytest

from smbkp.console import Console
from smbkp.models import BackupConfig, BackupItem, RetentionPolicy


class ScriptedInput:
    """Callable returning queued answers, then raising EOFError."""

    def __init__(self):
        self.answers = []
        self.prompts = 0

    def __call__(self):
        self.prompts += 1
        if not self.answers:
            raise EOFError
        return self.answers.pop(0)


@pytest.fixture
def scripted_input():
    """Queue answers with scripted_input.answers.append('yes')."""
    return ScriptedInput()


@pytest.fixture
def console(scripted_input):
    """
    Console writing to a StringIO.

    Read the output with console.stream.getvalue().
    """
    return Console(stream=io.StringIO(), input_func=scripted_input)


@pytest.fixture
def source_tree(tmp_path):
    """
    Create a source tree:

    - a.pdf
    - b.txt
    - tempdir/x.pdf
    - docs/readme.md
    - docs/nested/deep.txt
    """
    root = tmp_path / 'source'
    root.mkdir()
    (root / 'a.pdf').write_bytes(b'%PDF-a')
    (root / 'b.txt').write_text('plain text')

    (root / 'tempdir').mkdir()
    (root / 'tempdir' / 'x.pdf').write_bytes(b'%PDF-x')

    (root / 'docs').mkdir()
    (root / 'docs' / 'readme.md').write_text('# readme')
    (root / 'docs' / 'nested').mkdir()
    (root / 'docs' / 'nested' / 'deep.txt').write_text('deep')

    return root


@pytest.fixture
def backup_dest(tmp_path):
    """Empty directory standing in for a backup drive."""
    dest = tmp_path / 'drive'
    dest.mkdir()
    return dest


@pytest.fixture
def retention_policy():
    return RetentionPolicy(backups_to_keep=3, min_free_space='10mb', min_free_space_bytes=10485760)


@pytest.fixture
def make_config(retention_policy):
    """Factory building a BackupConfig from BackupItems."""

    def _make_config(*items, retention=None, bkp_dest_dir='smbkp'):
        return BackupConfig(
            bkp_dest_dir=bkp_dest_dir,
            retention=retention or retention_policy,
            bkp_items=tuple(items),
        )

    return _make_config


@pytest.fixture
def make_item():
    """Factory building a BackupItem from a source path."""

    def _make_item(source, destination=None, include=(), exclude=()):
        source = str(source)
        return BackupItem(
            source=source,
            destination=destination or source.rstrip('/').rsplit('/', 1)[-1],
            include=tuple(include),
            exclude=tuple(exclude),
        )

    return _make_item
