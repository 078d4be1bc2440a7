# -*- coding: utf-8 -*-
import datetime
import shlex
import shutil

from .constants import DATE_FORMAT
from .runner import Pipeline, Stage


def binary_exists(name):
    """True if ``name`` can be found on the PATH."""
    return shutil.which(name) is not None


def human_filesize(size):
    """Formats a byte count, e.g. ``human_filesize(1536) == '1.5 KB'``."""
    units = ['B', 'KB', 'MB', 'GB', 'TB', 'PB']
    size = float(size)
    idx = 0
    while size > 1024 and idx < len(units) - 1:
        size /= 1024
        idx += 1
    return '{} {}'.format(round(size, 2), units[idx]).replace('.0 ', ' ')


def parse_date(val):
    """Returns a ``datetime.date`` for a YYYY-MM-DD string or None."""
    try:
        return datetime.datetime.strptime(val, DATE_FORMAT).date()
    except ValueError:
        return None


def format_date(date):
    return date.strftime(DATE_FORMAT)


def directory_size(runner, directory):
    """Apparent size of ``directory`` in bytes, as reported by ``du -sb``.

    :return: The size, or None if du failed.
    """
    result = runner.run(Pipeline.of(Stage('du', ('-sb', directory))))
    if not result.ok or not result.stdout:
        return None
    try:
        return int(result.stdout.split()[0])
    except ValueError:
        return None


def local_free_bytes(path):
    return shutil.disk_usage(path).free


def remote_free_bytes(remote, path):
    """Free bytes on the filesystem holding ``path`` on the remote host.

    Parses the fourth column (available 1K blocks) of ``df -Pk``.
    """
    output = remote.exec('df -Pk {} | tail -1'.format(shlex.quote(path)))
    parts = output.split()
    try:
        return int(parts[3]) * 1024
    except (IndexError, ValueError):
        return 0
