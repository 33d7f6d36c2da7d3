"""
Unit tests for backup executor (smbkp/backup/executor.py).

Tests BackupExecutor for orchestrating complete backup runs.
"""

import os
from unittest.mock import MagicMock, call

import pytest
from freezegun import freeze_time

from smbkp.backup.copier import CopyError
from smbkp.backup.executor import BackupAbortedError, BackupExecutor, ProgressTracker, run_backup
from smbkp.models import BackupItem, RetentionPolicy
from smbkp.utils.disk import GB, DestinationError
from smbkp.utils.paths import PathTraversalError


FROZEN_NOW = '2024-03-05 14:30:15'
RUN_NAME = 'smbkp-20240305-143015'


def plenty_of_space(path):
    return 100 * GB


def make_executor(config, bkp_dest, console, **kwargs):
    kwargs.setdefault('free_space_probe', plenty_of_space)
    kwargs.setdefault('prefix', 'smbkp')
    return BackupExecutor(config, str(bkp_dest), console=console, **kwargs)


@pytest.fixture
def three_items(tmp_path, source_tree, make_item):
    """Three items where the second one has a missing source."""
    other = tmp_path / 'other'
    other.mkdir()
    (other / 'notes.txt').write_text('notes')

    return [
        make_item(source_tree),
        make_item(tmp_path / 'missing'),
        make_item(other),
    ]


def old_runs(backup_dest, names):
    root = backup_dest / 'smbkp'
    root.mkdir(exist_ok=True)
    for name in names:
        (root / name).mkdir()
    return root


class TestBackupExecutor:
    """Test BackupExecutor class."""

    def test_executor_initialization(self, make_config, backup_dest, console):
        executor = make_executor(make_config(), backup_dest, console)

        assert executor.backup_root == os.path.join(str(backup_dest), 'smbkp')
        assert executor.run_dir is None
        assert executor.results == []
        assert executor.failed_count == 0

    @freeze_time(FROZEN_NOW)
    def test_successful_backup(self, make_config, make_item, source_tree, backup_dest, console):
        config = make_config(make_item(source_tree, include=['*.pdf'], exclude=['temp*']))

        summary = make_executor(config, backup_dest, console).execute()

        run_dir = backup_dest / 'smbkp' / RUN_NAME
        assert summary.run_dir == str(run_dir)
        assert summary.success is True
        assert len(summary.results) == 1
        assert sorted(os.listdir(run_dir / 'source')) == ['a.pdf']
        assert '[SUCCESS] Backup completed successfully!' in console.stream.getvalue()

    @freeze_time(FROZEN_NOW)
    def test_custom_destination_and_dest_dir(self, make_config, make_item, source_tree, backup_dest, console):
        config = make_config(make_item(source_tree, destination='docs/mine'), bkp_dest_dir='backups')

        make_executor(config, backup_dest, console).execute()

        assert (backup_dest / 'backups' / RUN_NAME / 'docs' / 'mine' / 'b.txt').read_text() == 'plain text'

    @freeze_time(FROZEN_NOW)
    def test_single_file_item(self, make_config, make_item, source_tree, backup_dest, console):
        config = make_config(make_item(source_tree / 'b.txt'))

        summary = make_executor(config, backup_dest, console).execute()

        assert summary.success is True
        assert (backup_dest / 'smbkp' / RUN_NAME / 'b.txt').read_text() == 'plain text'

    def test_insufficient_free_space(self, make_config, make_item, source_tree, backup_dest, console):
        """10gb minimum with 5,000,000,000 bytes free aborts before writing."""
        retention = RetentionPolicy(backups_to_keep=3, min_free_space='10gb', min_free_space_bytes=10 * GB)
        config = make_config(make_item(source_tree), retention=retention)
        executor = make_executor(config, backup_dest, console, free_space_probe=lambda path: 5_000_000_000)

        with pytest.raises(DestinationError, match='less than required minimum'):
            executor.execute()

        assert os.listdir(backup_dest) == []
        assert executor.run_dir is None

    def test_free_space_probe_failure(self, make_config, backup_dest, console):
        def broken_probe(path):
            raise FileNotFoundError(2, 'No such file or directory', path)

        executor = make_executor(make_config(), backup_dest, console, free_space_probe=broken_probe)

        with pytest.raises(DestinationError, match='reading free space'):
            executor.execute()

    @freeze_time(FROZEN_NOW)
    def test_run_directory_collision(self, make_config, make_item, source_tree, backup_dest, console):
        old_runs(backup_dest, [RUN_NAME])

        with pytest.raises(DestinationError, match='creating backup directory'):
            make_executor(make_config(make_item(source_tree)), backup_dest, console).execute()

    @freeze_time(FROZEN_NOW)
    def test_continue_on_error(self, make_config, three_items, backup_dest, console):
        summary = make_executor(make_config(*three_items), backup_dest, console).execute()

        assert [r.success for r in summary.results] == [True, False, True]
        assert summary.failed_count == 1
        assert summary.success is False
        assert isinstance(summary.results[1].error, CopyError)
        assert (backup_dest / 'smbkp' / RUN_NAME / 'other' / 'notes.txt').exists()
        assert 'Backup completed with 1 failure(s).' in console.stream.getvalue()

    @freeze_time(FROZEN_NOW)
    def test_exit_on_error_non_interactive(self, make_config, three_items, backup_dest, console, scripted_input):
        executor = make_executor(
            make_config(*three_items), backup_dest, console, exit_on_error=True, non_interactive=True
        )

        with pytest.raises(BackupAbortedError) as exc_info:
            executor.execute()

        assert len(executor.results) == 2
        assert exc_info.value.result is executor.results[1]
        assert not (backup_dest / 'smbkp' / RUN_NAME / 'other').exists()
        assert scripted_input.prompts == 0

    @freeze_time(FROZEN_NOW)
    def test_exit_on_error_interactive_no_continues(
        self, make_config, three_items, backup_dest, console, scripted_input
    ):
        scripted_input.answers.append('  NO ')
        executor = make_executor(make_config(*three_items), backup_dest, console, exit_on_error=True)

        summary = executor.execute()

        assert len(summary.results) == 3
        assert summary.failed_count == 1
        # Second prompt (retention) got end of input and skipped cleanup
        assert scripted_input.prompts == 2
        assert summary.retention_ran is False

    @pytest.mark.parametrize('answer', ['yes', 'n', '', 'nope'])
    def test_exit_on_error_interactive_other_answer_aborts(
        self, answer, make_config, three_items, backup_dest, console, scripted_input
    ):
        scripted_input.answers.append(answer)
        executor = make_executor(make_config(*three_items), backup_dest, console, exit_on_error=True)

        with pytest.raises(BackupAbortedError):
            executor.execute()

        assert len(executor.results) == 2

    def test_counting_failure_recorded(self, make_config, make_item, source_tree, backup_dest, console):
        copier = MagicMock()
        copier.count_entries.side_effect = CopyError('reading directory: permission denied')
        config = make_config(make_item(source_tree))

        summary = make_executor(config, backup_dest, console, copier=copier).execute()

        assert summary.results[0].success is False
        copier.copy_tree.assert_not_called()

    @freeze_time(FROZEN_NOW)
    def test_items_sharing_basename_merge(self, make_config, make_item, tmp_path, backup_dest, console):
        for name, filename in (('a', 'one.txt'), ('b', 'two.txt')):
            (tmp_path / name / 'docs' / 'sub').mkdir(parents=True)
            (tmp_path / name / 'docs' / 'sub' / filename).write_text(name)
        config = make_config(make_item(tmp_path / 'a' / 'docs'), make_item(tmp_path / 'b' / 'docs'))

        summary = make_executor(config, backup_dest, console).execute()

        assert [r.success for r in summary.results] == [True, True]
        merged = backup_dest / 'smbkp' / RUN_NAME / 'docs' / 'sub'
        assert sorted(os.listdir(merged)) == ['one.txt', 'two.txt']

    @freeze_time(FROZEN_NOW)
    def test_nested_destination_merges(self, make_config, make_item, source_tree, tmp_path, backup_dest, console):
        extra = tmp_path / 'extra'
        extra.mkdir()
        (extra / 'more.txt').write_text('more')
        config = make_config(make_item(source_tree), make_item(extra, destination='source/docs'))

        summary = make_executor(config, backup_dest, console).execute()

        assert summary.success is True
        docs = backup_dest / 'smbkp' / RUN_NAME / 'source' / 'docs'
        assert sorted(os.listdir(docs)) == ['more.txt', 'nested', 'readme.md']

    @freeze_time(FROZEN_NOW)
    def test_root_destination_copies_into_run_dir(self, make_config, make_item, source_tree, backup_dest, console):
        config = make_config(make_item(source_tree, destination='.'))

        summary = make_executor(config, backup_dest, console).execute()

        assert summary.success is True
        assert (backup_dest / 'smbkp' / RUN_NAME / 'a.pdf').exists()
        assert (backup_dest / 'smbkp' / RUN_NAME / 'docs' / 'readme.md').exists()

    def test_traversal_destination_fails_item(self, make_config, source_tree, backup_dest, console):
        item = BackupItem(source=str(source_tree), destination='../escape')

        summary = make_executor(make_config(item), backup_dest, console).execute()

        assert isinstance(summary.results[0].error, PathTraversalError)
        assert not (backup_dest / 'escape').exists()
        assert not (backup_dest / 'smbkp' / 'escape').exists()


class TestRetentionAfterRun:
    """Test when old run directories are removed."""

    OLD = ['smbkp-20200101-000000', 'smbkp-20200102-000000', 'smbkp-20200103-000000']

    @freeze_time(FROZEN_NOW)
    def test_retention_runs_after_success(self, make_config, make_item, source_tree, backup_dest, console):
        root = old_runs(backup_dest, self.OLD)

        summary = make_executor(make_config(make_item(source_tree)), backup_dest, console).execute()

        assert summary.retention_ran is True
        assert summary.deleted_backups == 1
        assert sorted(os.listdir(root)) == self.OLD[1:] + [RUN_NAME]

    @freeze_time(FROZEN_NOW)
    def test_retention_skipped_on_failure_non_interactive(
        self, make_config, three_items, backup_dest, console
    ):
        root = old_runs(backup_dest, self.OLD)

        summary = make_executor(make_config(*three_items), backup_dest, console, non_interactive=True).execute()

        assert summary.retention_ran is False
        assert sorted(os.listdir(root)) == self.OLD + [RUN_NAME]
        assert 'Skipping cleanup of old backups' in console.stream.getvalue()

    @freeze_time(FROZEN_NOW)
    def test_retention_on_failure_interactive_yes(
        self, make_config, three_items, backup_dest, console, scripted_input
    ):
        root = old_runs(backup_dest, self.OLD)
        scripted_input.answers.append('yes')

        summary = make_executor(make_config(*three_items), backup_dest, console).execute()

        assert summary.retention_ran is True
        assert summary.deleted_backups == 1
        assert sorted(os.listdir(root)) == self.OLD[1:] + [RUN_NAME]

    @freeze_time(FROZEN_NOW)
    def test_retention_on_failure_interactive_y_is_not_yes(
        self, make_config, three_items, backup_dest, console, scripted_input
    ):
        root = old_runs(backup_dest, self.OLD)
        scripted_input.answers.append('y')

        summary = make_executor(make_config(*three_items), backup_dest, console).execute()

        assert summary.retention_ran is False
        assert len(os.listdir(root)) == 4

    @freeze_time(FROZEN_NOW)
    def test_cleanup_error_is_warning(self, make_config, make_item, source_tree, backup_dest, console):
        from smbkp.backup.retention import CleanupError

        retention_manager = MagicMock()
        retention_manager.cleanup.side_effect = CleanupError('Failed to list backups')
        config = make_config(make_item(source_tree))

        summary = make_executor(config, backup_dest, console, retention_manager=retention_manager).execute()

        assert summary.success is True
        assert '[WARN] Failed to list backups' in console.stream.getvalue()


class TestProgressTracker:
    """Test ProgressTracker."""

    def test_draws_each_percentage_once(self):
        console = MagicMock()
        tracker = ProgressTracker(3, console)

        for _ in range(3):
            tracker()

        assert console.progress.call_args_list == [call(33), call(66), call(100)]

    def test_never_moves_backwards(self):
        console = MagicMock()
        tracker = ProgressTracker(1000, console)

        for _ in range(1000):
            tracker()

        drawn = [c.args[0] for c in console.progress.call_args_list]
        assert drawn == sorted(set(drawn))
        assert drawn[-1] == 100
        assert len(drawn) == 101

    def test_zero_total_draws_nothing(self):
        console = MagicMock()
        tracker = ProgressTracker(0, console)

        tracker()

        console.progress.assert_not_called()


class TestRunBackup:
    """Test the run_backup helper."""

    @freeze_time(FROZEN_NOW)
    def test_run_backup(self, make_config, make_item, source_tree, backup_dest, console, monkeypatch):
        monkeypatch.setattr('smbkp.backup.executor.get_free_space', plenty_of_space)
        monkeypatch.setattr('smbkp.backup.executor.Config.PREFIX', 'smbkp')

        summary = run_backup(make_config(make_item(source_tree)), str(backup_dest), console=console)

        assert summary.success is True
        assert summary.run_dir.endswith(RUN_NAME)
