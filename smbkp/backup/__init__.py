"""
Backup module for Simple Backup.

This module handles the core backup functionality including:
- Include/exclude pattern matching
- Selective tree copy
- Execution orchestration and failure policy
- Retention policy enforcement
"""

from .executor import BackupExecutor, BackupAbortedError, run_backup
from .copier import TreeCopier, CopyError
from .patterns import should_include
from .retention import RetentionManager, CleanupError

__all__ = [
    'BackupExecutor',
    'BackupAbortedError',
    'run_backup',
    'TreeCopier',
    'CopyError',
    'should_include',
    'RetentionManager',
    'CleanupError'
]
