# -*- coding: utf-8 -*-
import logging
from typing import NamedTuple

from .config import CompressionKind
from .constants import ARCHIVE_NAME, CIPHER, PBKDF2_ITERATIONS
from .errors import TransferError
from .runner import Pipeline, Stage, meter_stage

logger = logging.getLogger(__name__)

EXTENSIONS = {
    CompressionKind.GZIP: '.arbk',
    CompressionKind.XZ: '.arbk.xz',
    CompressionKind.NONE: '.tar',
}

# tar flag needed to read each format back.
TAR_FLAGS = {
    CompressionKind.GZIP: 'z',
    CompressionKind.XZ: 'J',
    CompressionKind.NONE: '',
}


def remote_filename(date, user, encrypted, compression):
    """``{date}-{user}-arkhive[.enc]{ext}``"""
    return '{}-{}-{}{}{}'.format(date, user, ARCHIVE_NAME,
                                 '.enc' if encrypted else '',
                                 EXTENSIONS[compression])


def remote_path(home, date, user, encrypted, compression):
    return '{}/{}/{}'.format(home.rstrip('/'), date, remote_filename(
        date, user, encrypted, compression))


class BackupDescriptor(NamedTuple):
    """Where and how the backup of one day is stored."""
    date: str
    compression: CompressionKind
    encrypted: bool
    remote_path: str

    @classmethod
    def for_config(cls, config, date):
        return cls(
            date=date,
            compression=config.compression,
            encrypted=config.with_crypt,
            remote_path=remote_path(config.ssh_backup_home, date,
                                    config.ssh_user, config.with_crypt,
                                    config.compression))

    @property
    def remote_dir(self):
        return self.remote_path.rsplit('/', 1)[0]


def compressor_stage(compression):
    """The compression stage, or None to pass the tar stream through."""
    if compression is CompressionKind.GZIP:
        return Stage('gzip')
    if compression is CompressionKind.XZ:
        return Stage('xz', ('-9',))
    return None


def _openssl_args(password):
    return ('-salt', '-pbkdf2', '-iter', PBKDF2_ITERATIONS,
            '-pass', 'pass:{}'.format(password))


def encrypt_stage(password):
    return Stage('openssl', ('enc', CIPHER) + _openssl_args(password),
                 secrets=(password,))


def decrypt_stage(password, source):
    return Stage('openssl', ('enc', '-d', CIPHER) + _openssl_args(password) +
                 ('-in', source), secrets=(password,))


class Shipper(object):
    """Streams the archive of the backup directory to the remote host.

    The archive is never written locally: tar reads the manifest, the
    stream is optionally metered, compressed and encrypted, and ssh writes
    it to the remote file.
    """
    def __init__(self, config, remote, runner):
        self.config = config
        self.remote = remote
        self.runner = runner

    def get_pipeline(self, manifest_path, descriptor, meter_size=None):
        """Builds the upload pipeline.

        :param meter_size: Expected tar stream size. A pv stage is added
            when given.
        """
        encrypt = None
        if descriptor.encrypted:
            encrypt = encrypt_stage(self.config.crypt_password)
        return Pipeline.of(
            Stage('tar', ('-cf', '-', '--null', '--no-unquote', '-T',
                          manifest_path)),
            meter_stage(meter_size) if meter_size is not None else None,
            compressor_stage(descriptor.compression),
            encrypt,
            self.remote.upload_stage(descriptor.remote_path))

    def ship(self, manifest_path, descriptor, meter_size=None,
             on_progress=None):
        """Uploads and verifies the archive.

        :return: Size of the remote file in bytes.
        :raises TransferError: If the pipeline fails or the remote file is
            missing or empty afterwards.
        """
        pipeline = self.get_pipeline(manifest_path, descriptor, meter_size)
        logger.info('Uploading archive to %s:%s ...', self.config.ssh_host,
                    descriptor.remote_path)
        result = self.runner.run(pipeline, on_progress)
        if not result.ok:
            raise TransferError(
                'Archive upload failed',
                command=pipeline.render(),
                returncode=result.exit_code,
                stderr=result.stderr)

        # Exit codes alone do not prove the remote file was written.
        size = self.remote.file_size(descriptor.remote_path)
        if size <= 0:
            raise TransferError(
                'Remote file {} is missing or empty after upload'.format(
                    descriptor.remote_path),
                stderr=result.stderr)
        return size
