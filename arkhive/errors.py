# -*- coding: utf-8 -*-
"""Error taxonomy.

Every failure the backup and restore runs can end with is one of the
``ErrorKind`` members. All of them are terminal for the current run and
none is retried. They derive from ``click.ClickException`` so the command
line prints them and exits with status 1 without extra plumbing.
"""
import enum

import click

from .constants import STDERR_TAIL_LINES


class ErrorKind(enum.Enum):
    PROCESS_SPAWN = 'process-spawn'
    INVALID_DIRECTORY = 'invalid-directory'
    PREFLIGHT = 'preflight'
    DISK_SPACE = 'disk-space'
    DUMP = 'dump'
    TRANSFER = 'transfer'
    RESTORE_FORMAT_NOT_FOUND = 'restore-format-not-found'
    DECRYPT_EXTRACT = 'decrypt-extract'


class ArkhiveError(click.ClickException):
    """Base class for run-terminating failures.

    :param message: Human readable summary.
    :param command: The command (already redacted) that failed, if any.
    :param returncode: Exit code of that command, if any. ``exit_code``
        stays the status the command line exits with.
    :param stderr: Captured stderr. Only the tail is kept.
    """
    kind = None

    def __init__(self, message, command=None, returncode=None, stderr=None):
        super(ArkhiveError, self).__init__(message)
        self.command = command
        self.returncode = returncode
        self.stderr_tail = tail(stderr)

    def format_message(self):
        parts = [self.message]
        if self.command:
            parts.append('Command: {}'.format(self.command))
        if self.returncode is not None:
            parts.append('Exit code: {}'.format(self.returncode))
        if self.stderr_tail:
            parts.append('Stderr:\n{}'.format(self.stderr_tail))
        return '\n'.join(parts)


class ProcessSpawnError(ArkhiveError):
    """A process could not be created at all."""
    kind = ErrorKind.PROCESS_SPAWN


class InvalidDirectoryError(ArkhiveError):
    kind = ErrorKind.INVALID_DIRECTORY


class PreflightError(ArkhiveError):
    """Missing binary, unwritable directory or SSH identity mismatch."""
    kind = ErrorKind.PREFLIGHT


class DiskSpaceError(ArkhiveError):
    kind = ErrorKind.DISK_SPACE


class DumpError(ArkhiveError):
    kind = ErrorKind.DUMP


class TransferError(ArkhiveError):
    """Non-zero pipeline exit or a missing/empty remote result."""
    kind = ErrorKind.TRANSFER


class RemoteCommandError(TransferError):
    """A command run over SSH exited non-zero."""


class RestoreFormatNotFoundError(ArkhiveError):
    kind = ErrorKind.RESTORE_FORMAT_NOT_FOUND

    def __init__(self, date, candidates):
        message = 'No backup found for {}. Tried:\n{}'.format(
            date, '\n'.join('  {}'.format(c) for c in candidates))
        super(RestoreFormatNotFoundError, self).__init__(message)
        self.candidates = list(candidates)


class DecryptExtractError(ArkhiveError):
    kind = ErrorKind.DECRYPT_EXTRACT


class NotificationError(click.ClickException):
    """The notification mail could not be sent."""


class ConfigError(click.ClickException):
    """Raised by the configuration loader, before any run starts."""


def tail(text, lines=STDERR_TAIL_LINES):
    """Returns the last ``lines`` lines of ``text`` or None."""
    if not text:
        return None
    return '\n'.join(text.splitlines()[-lines:])
