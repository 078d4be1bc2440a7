# -*- coding: utf-8 -*-
import datetime
import enum
import logging
import os
import shlex
import time
from typing import NamedTuple, Optional

from .cleaner import Cleaner
from .constants import SIZE_FACTOR_CRYPT, SIZE_FACTOR_PLAIN
from .databases import MysqlDumper, configured_dumpers
from .enumerator import FileEnumerator
from .errors import (ArkhiveError, DiskSpaceError, PreflightError,
                     ProcessSpawnError, RemoteCommandError, TransferError)
from .remote import SshClient
from .runner import ProcessRunner, ProgressSink
from .shipper import BackupDescriptor, Shipper, compressor_stage
from .utils import (binary_exists, directory_size, format_date,
                    human_filesize, local_free_bytes, remote_free_bytes)

logger = logging.getLogger(__name__)


class BackupState(enum.Enum):
    PREFLIGHT = 'preflight'
    DISK_SPACE_CHECK = 'disk space check'
    MYSQL_DUMP = 'MySQL dump'
    PGSQL_DUMP = 'PostgreSQL dump'
    REMOTE_RETENTION_CLEANUP = 'remote retention cleanup'
    REMOTE_DIR_CREATE = 'remote directory creation'
    STREAM_ARCHIVE_UPLOAD = 'archive upload'
    REMOTE_PERMISSION_FIX = 'remote permission fix'
    LOCAL_CLEANUP = 'local cleanup'
    DONE = 'done'


class RunOutcome(NamedTuple):
    """Result of a whole run.

    ``state`` is the state the run ended in; for failed runs that is the
    state that failed.
    """
    ok: bool
    state: object
    size: Optional[int] = None
    error: Optional[ArkhiveError] = None


class BackupOrchestrator(object):
    """Runs one backup, start to finish.

    The states of ``BackupState`` are visited strictly in order. The
    first error aborts the run; nothing is retried and there is no
    partial success.

    :param config: A ``Config``.
    :param remote: Client for the backup host, ``SshClient`` by default.
    :param runner: A ``ProcessRunner``.
    :param with_disk_space_check: Run the disk space estimation.
    :param with_progress: Meter dumps and upload with pv.
    :param progress: A ``ProgressSink`` receiving pv snapshots and
        enumeration counters.
    :param today: The backup date, today if None.
    """
    def __init__(self, config, remote=None, runner=None,
                 with_disk_space_check=False, with_progress=False,
                 progress=None, today=None):
        self.config = config
        self.runner = runner or ProcessRunner()
        self.remote = remote or SshClient.from_config(config, self.runner)
        self.with_disk_space_check = with_disk_space_check
        self.with_progress = with_progress
        self.progress = progress or ProgressSink()
        self.today = today or datetime.date.today()
        self.date = format_date(self.today)
        self.descriptor = BackupDescriptor.for_config(config, self.date)
        self.dumpers = configured_dumpers(config, self.runner)
        self.shipper = Shipper(config, self.remote, self.runner)
        self.cleaner = Cleaner(config.retention_days, self.today)
        self.state = None
        self.history = []
        self.dump_files = []

    def run(self):
        """Runs the backup and reports the result as a ``RunOutcome``.

        Only a failure to spawn a process is raised.
        """
        try:
            size = self.execute()
        except ProcessSpawnError:
            raise
        except ArkhiveError as e:
            return RunOutcome(ok=False, state=self.state, error=e)
        return RunOutcome(ok=True, state=self.state, size=size)

    def execute(self):
        """Runs the backup.

        :return: Verified size of the uploaded archive in bytes.
        :raises ArkhiveError: On the first failing state.
        """
        start = time.monotonic()

        self._enter(BackupState.PREFLIGHT)
        self.preflight()

        if self.with_disk_space_check:
            self._enter(BackupState.DISK_SPACE_CHECK)
            self.check_disk_space()

        for dumper in self.dumpers:
            if isinstance(dumper, MysqlDumper):
                self._enter(BackupState.MYSQL_DUMP)
            else:
                self._enter(BackupState.PGSQL_DUMP)
            self.dump_database(dumper)

        self._enter(BackupState.REMOTE_RETENTION_CLEANUP)
        self.cleaner.clean(self.remote, self.config.ssh_backup_home)

        self._enter(BackupState.REMOTE_DIR_CREATE)
        self.remote.exec('mkdir -p {}'.format(
            shlex.quote(self.descriptor.remote_dir)))

        self._enter(BackupState.STREAM_ARCHIVE_UPLOAD)
        size = self.upload_archive()

        self._enter(BackupState.REMOTE_PERMISSION_FIX)
        self.fix_remote_permissions()

        self._enter(BackupState.LOCAL_CLEANUP)
        self.cleanup_local()

        self._enter(BackupState.DONE)
        logger.info('Backup completed in %d seconds.',
                    time.monotonic() - start)
        return size

    def _enter(self, state):
        logger.debug('Entering state: %s', state.value)
        self.state = state
        self.history.append(state)

    def _on_progress(self, label):
        if not self.with_progress:
            return None
        return lambda snapshot: self.progress.update(label, snapshot)

    def required_binaries(self):
        with_estimate = self.with_progress or self.with_disk_space_check
        needed = ['tar']
        needed += list(self.remote.required_binaries)
        compressor = compressor_stage(self.config.compression)
        if compressor is not None:
            needed.append(compressor.program)
        if self.with_progress:
            needed.append('pv')
        if self.config.with_crypt:
            needed.append('openssl')
        if with_estimate:
            needed.append('du')
        for dumper in self.dumpers:
            needed += dumper.required_binaries(with_estimate)
        return needed

    def preflight(self):
        """Checks binaries, the local directory and the SSH identity.

        :raises PreflightError:
        """
        missing = [b for b in self.required_binaries() if not binary_exists(b)]
        if missing:
            raise PreflightError('Cannot find required binaries: {}'.format(
                ', '.join(missing)))

        directory = self.config.backup_directory
        if not os.path.isdir(directory):
            raise PreflightError(
                'Backup directory does not exist: {}'.format(directory))
        marker = os.path.join(
            directory, '.arkhive-write-test-{}'.format(os.getpid()))
        try:
            with open(marker, 'w'):
                pass
            os.remove(marker)
        except OSError as e:
            raise PreflightError(
                'Cannot write into backup directory {}: {}'.format(
                    directory, e))

        try:
            whoami = self.remote.exec('whoami')
        except RemoteCommandError as e:
            raise PreflightError('SSH remote check failed', command=e.command,
                                 returncode=e.returncode, stderr=e.stderr_tail)
        if whoami != self.config.ssh_user:
            raise PreflightError(
                'SSH connected, but user mismatch: expected {}, got {}'.format(
                    self.config.ssh_user, whoami))
        logger.info('Preflight checks passed.')

    def _directory_size(self, error_class):
        size = directory_size(self.runner, self.config.backup_directory)
        if size is None:
            raise error_class('Cannot estimate size of backup directory {}'
                              .format(self.config.backup_directory))
        return size

    def estimate_required_bytes(self):
        """Expected archive size: everything not excluded, times the
        compression factor."""
        database_bytes = sum(d.estimate_size() for d in self.dumpers)
        directory_bytes = self._directory_size(DiskSpaceError)
        with FileEnumerator() as enumerator:
            manifest = enumerator.enumerate(self.config.backup_directory,
                                            self.config.exclusion_patterns)
        if self.config.with_crypt:
            factor = SIZE_FACTOR_CRYPT
        else:
            factor = SIZE_FACTOR_PLAIN
        raw = database_bytes + directory_bytes - manifest.excluded_bytes
        return max(int(raw * factor), 0)

    def check_disk_space(self):
        """Compares the estimated backup size to free space on both ends.

        :raises DiskSpaceError:
        """
        needed = self.estimate_required_bytes()

        local_free = local_free_bytes(self.config.backup_directory)
        if local_free < needed:
            raise DiskSpaceError(
                'Not enough free space: {} available, need ~{}'.format(
                    human_filesize(local_free), human_filesize(needed)))

        remote_free = remote_free_bytes(self.remote,
                                        self.config.ssh_backup_home)
        if remote_free < needed:
            raise DiskSpaceError(
                'Remote server does not have enough free space: {} '
                'available, need ~{}'.format(
                    human_filesize(remote_free), human_filesize(needed)))
        logger.info('Disk space OK, backup needs ~%s.', human_filesize(needed))

    def dump_database(self, dumper):
        self.dump_files.append(dumper.dump_path(self.date))
        dumper.dump(self.date, self.with_progress,
                    self._on_progress('{} dump'.format(dumper.title)))
        if self.with_progress:
            self.progress.finish()

    def upload_archive(self):
        """Streams the archive to the remote host and verifies it.

        :return: Remote file size in bytes.
        """
        counter = self.progress.count if self.with_progress else None
        with FileEnumerator(on_count=counter) as enumerator:
            manifest = enumerator.enumerate(self.config.backup_directory,
                                            self.config.exclusion_patterns)
            if self.with_progress:
                self.progress.finish()

            meter_size = None
            if self.with_progress:
                directory_bytes = self._directory_size(TransferError)
                meter_size = max(directory_bytes - manifest.excluded_bytes, 1)

            size = self.shipper.ship(manifest.path, self.descriptor,
                                     meter_size, self._on_progress('Uploading'))
            if self.with_progress:
                self.progress.finish()

        logger.info('Uploaded %s to %s.', human_filesize(size),
                    self.descriptor.remote_path)
        return size

    def fix_remote_permissions(self):
        home = shlex.quote(self.config.ssh_backup_home)
        logger.info('Fixing permissions on remote SSH server...')
        self.remote.exec(
            'find {0} -type d -exec chmod 0755 {{}} + && '
            'find {0} -type f -exec chmod 0644 {{}} +'.format(home))

    def cleanup_local(self):
        """Removes the database dumps written by this run."""
        while self.dump_files:
            path = self.dump_files.pop()
            if os.path.exists(path):
                os.remove(path)
                logger.info('Removed local dump %s', path)
