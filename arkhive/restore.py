# -*- coding: utf-8 -*-
import logging
import os
import shlex
import tempfile

from .backups import RunOutcome
from .config import CompressionKind
from .constants import DATE_DIR_RE, ERR_NO_REMOTE_BACKUPS
from .errors import (ArkhiveError, DecryptExtractError, InvalidDirectoryError,
                     ProcessSpawnError, RestoreFormatNotFoundError,
                     TransferError)
from .remote import SshClient
from .runner import Pipeline, ProcessRunner, Stage
from .shipper import TAR_FLAGS, decrypt_stage, remote_path
from .utils import parse_date

logger = logging.getLogger(__name__)

# Formats are tried in this order, the first one found wins.
FORMAT_PRIORITY = (CompressionKind.GZIP, CompressionKind.XZ,
                   CompressionKind.NONE)


class RestoreOrchestrator(object):
    """Fetches the backup of one day and unpacks it into a directory.

    The compression of a remote archive is not recorded anywhere, so it
    is detected from the file name.

    :param config: A ``Config``. Encryption and user decide the names
        that are tried.
    :param remote: Client for the backup host, ``SshClient`` by default.
    :param runner: A ``ProcessRunner``.
    """
    def __init__(self, config, remote=None, runner=None):
        self.config = config
        self.runner = runner or ProcessRunner()
        self.remote = remote or SshClient.from_config(config, self.runner)

    def candidates(self, date):
        """Remote paths that may hold the backup of ``date``."""
        return [(kind, remote_path(self.config.ssh_backup_home, date,
                                   self.config.ssh_user,
                                   self.config.with_crypt, kind))
                for kind in FORMAT_PRIORITY]

    def detect_format(self, date):
        """Returns ``(CompressionKind, remote_path)`` of the backup.

        :raises RestoreFormatNotFoundError: If no candidate exists.
        """
        candidates = self.candidates(date)
        for kind, path in candidates:
            logger.debug('Looking for %s', path)
            if self.remote.file_exists(path):
                logger.info('Found %s backup: %s', kind.value, path)
                return kind, path
        raise RestoreFormatNotFoundError(date, [p for _, p in candidates])

    def list_remote_dates(self):
        """Dated backup directories on the remote host, oldest first."""
        listing = self.remote.exec('ls -1 {}'.format(
            shlex.quote(self.config.ssh_backup_home)))
        dates = [n.strip() for n in listing.splitlines()
                 if DATE_DIR_RE.match(n.strip()) and parse_date(n.strip())]
        if not dates:
            logger.warning(ERR_NO_REMOTE_BACKUPS)
        return sorted(dates)

    def run(self, date, destination):
        """Restores and reports the result as a ``RunOutcome``.

        Only a failure to spawn a process is raised.
        """
        try:
            self.restore(date, destination)
        except ProcessSpawnError:
            raise
        except ArkhiveError as e:
            return RunOutcome(ok=False, state='restore', error=e)
        return RunOutcome(ok=True, state='restore')

    def restore(self, date, destination):
        """Downloads the backup of ``date`` and extracts it.

        :param date: ``YYYY-MM-DD``.
        :param destination: Existing, writable directory.
        :raises InvalidDirectoryError: If ``destination`` is unusable.
        :raises RestoreFormatNotFoundError:
        :raises TransferError: If the download fails or is empty.
        :raises DecryptExtractError: If decryption or extraction fails.
        """
        if parse_date(date) is None:
            raise ValueError('Invalid date {!r}, expected YYYY-MM-DD'.format(
                date))
        if not os.path.isdir(destination) or \
                not os.access(destination, os.W_OK):
            raise InvalidDirectoryError(
                'Restore destination is not a writable directory: {}'.format(
                    destination))

        kind, source = self.detect_format(date)

        fd, tmp_path = tempfile.mkstemp(prefix='arkhive-restore-')
        os.close(fd)
        try:
            self._download(source, tmp_path)
            self._extract(kind, tmp_path, destination)
        finally:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
        logger.info('Restored %s into %s', source, destination)

    def _download(self, source, tmp_path):
        pipeline = Pipeline.of(self.remote.download_stage(source, tmp_path))
        logger.info('Downloading %s ...', source)
        result = self.runner.run(pipeline)
        if not result.ok:
            raise TransferError(
                'Download of {} failed'.format(source),
                command=pipeline.render(),
                returncode=result.exit_code,
                stderr=result.stderr)
        if not os.access(tmp_path, os.R_OK) or \
                os.path.getsize(tmp_path) == 0:
            raise TransferError(
                'Downloaded file {} is empty or unreadable'.format(tmp_path),
                command=pipeline.render(),
                stderr=result.stderr)

    def get_extract_pipeline(self, kind, tmp_path, destination):
        flags = '-x{}f'.format(TAR_FLAGS[kind])
        if self.config.with_crypt:
            return Pipeline.of(
                decrypt_stage(self.config.crypt_password, tmp_path),
                Stage('tar', (flags, '-', '-C', destination)))
        return Pipeline.of(Stage('tar', (flags, tmp_path, '-C', destination)))

    def _extract(self, kind, tmp_path, destination):
        pipeline = self.get_extract_pipeline(kind, tmp_path, destination)
        logger.info('Extracting into %s ...', destination)
        result = self.runner.run(pipeline)
        if not result.ok:
            raise DecryptExtractError(
                'Decryption or extraction failed',
                command=pipeline.render(),
                returncode=result.exit_code,
                stderr=result.stderr)
