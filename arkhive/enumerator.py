# -*- coding: utf-8 -*-
"""Builds the list of files that go into the archive.

Exclusion patterns only know the ``*`` wildcard. Paths are matched
relative to the backed up directory, with a leading slash:

* ``/example/*`` matches everything below ``/example/``
* ``/example/`` matches exactly ``/example/``
* ``*/example`` matches anything ending with ``/example``
* ``*.png`` matches anything ending with ``.png``
"""
import logging
import os
import re
import stat
import tempfile
import time
import weakref
from typing import NamedTuple, Optional

from .constants import COUNTER_INTERVAL
from .errors import InvalidDirectoryError

logger = logging.getLogger(__name__)


def wildcard_to_regex(literal):
    """Escapes ``literal`` and turns each ``*`` into ``.*``."""
    return '.*'.join(re.escape(part) for part in literal.split('*'))


class ExclusionMatcher(object):
    """A compiled exclusion pattern.

    Calling the matcher with a ``/``-rooted relative path tells whether
    the path is excluded.
    """
    def __init__(self, pattern):
        self.pattern = pattern
        self.regex = re.compile(self._to_regex(pattern))

    @staticmethod
    def _to_regex(pattern):
        if pattern.startswith('/'):
            body = pattern[1:]
            if body.endswith('/*'):
                return '^/' + wildcard_to_regex(body[:-2]) + '/.*'
            return '^/' + wildcard_to_regex(body) + '$'

        converted = wildcard_to_regex(pattern)
        if not converted.startswith('.*'):
            converted = '.*' + converted
        return converted + '$'

    def __call__(self, path):
        return self.regex.match(path) is not None

    def __repr__(self):
        return '<ExclusionMatcher {!r} -> {!r}>'.format(
            self.pattern, self.regex.pattern)


def compile_patterns(patterns):
    """Returns matchers for all non-blank ``patterns``, in order."""
    return [ExclusionMatcher(p.strip()) for p in patterns
            if isinstance(p, str) and p.strip()]


class WalkEntry(NamedTuple):
    """One node seen by ``walk()``.

    ``reason`` is set when the node was skipped; ``size`` is set for
    regular files.
    """
    path: str
    size: Optional[int] = None
    reason: Optional[str] = None

    @property
    def skipped(self):
        return self.reason is not None


def walk(root):
    """Yields a ``WalkEntry`` for every regular file below ``root``.

    Directories that cannot be listed and entries that cannot be
    stat'ed are yielded as skipped entries instead of raising. Symlinks
    to files are followed, symlinked directories are not descended
    into.
    """
    stack = [root]
    while stack:
        current = stack.pop()
        try:
            with os.scandir(current) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError as e:
            yield WalkEntry(current, reason=e.strerror or str(e))
            continue

        subdirs = []
        for entry in entries:
            try:
                if entry.is_dir(follow_symlinks=False):
                    subdirs.append(entry.path)
                    continue
                st = entry.stat()
            except OSError as e:
                yield WalkEntry(entry.path, reason=e.strerror or str(e))
                continue
            if stat.S_ISREG(st.st_mode):
                yield WalkEntry(entry.path, size=st.st_size)

        stack.extend(reversed(subdirs))


class Manifest(NamedTuple):
    """Absolute paths of the included files, NUL separated in ``path``."""
    path: str
    included: int
    excluded: int
    excluded_bytes: int
    warnings: tuple

    def read(self):
        """Returns the listed paths."""
        with open(self.path, encoding='utf-8', errors='surrogateescape',
                  newline='') as f:
            return [p for p in f.read().split('\0') if p]


def _remove_files(paths):
    while paths:
        path = paths.pop()
        try:
            os.remove(path)
        except FileNotFoundError:
            continue
        logger.debug('Removed manifest %s', path)


class FileEnumerator(object):
    """Writes manifests of directories to temporary files.

    The enumerator owns the files it writes. They are removed by
    ``close()``, by leaving the ``with`` block, or at the latest when the
    enumerator is garbage collected or the interpreter exits. Removal
    happens once.

    :param on_count: Optional callable receiving
        ``(scanned, included, excluded)`` at most every half second.
    """
    def __init__(self, on_count=None):
        self.on_count = on_count
        self._files = []
        self._finalizer = weakref.finalize(self, _remove_files, self._files)

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def close(self):
        self._finalizer()

    @property
    def closed(self):
        return not self._finalizer.alive

    def enumerate(self, directory, patterns=()):
        """Lists all files in ``directory`` not matching ``patterns``.

        :param directory: Root of the tree to enumerate.
        :param patterns: Exclusion patterns, see module docstring.
        :return: A ``Manifest``.
        :raises InvalidDirectoryError: If the directory is missing or
            unreadable.
        """
        if self.closed:
            raise ValueError('Enumerator is closed.')
        if not os.path.isdir(directory) or not os.access(
                directory, os.R_OK | os.X_OK):
            raise InvalidDirectoryError(
                'Invalid directory provided: {}. Check that it exists and '
                'is readable.'.format(directory))

        matchers = compile_patterns(patterns)
        root = os.path.abspath(directory)

        fd, manifest_path = tempfile.mkstemp(prefix='arkhive-manifest-')
        self._files.append(manifest_path)

        logger.info('Enumerating directory %s ...', directory)
        included = excluded = excluded_bytes = 0
        warnings = []
        last_report = time.monotonic()

        with os.fdopen(fd, 'w', encoding='utf-8',
                       errors='surrogateescape') as out:
            for entry in walk(root):
                if entry.skipped:
                    warnings.append((entry.path, entry.reason))
                    logger.debug('Skipped %s: %s', entry.path, entry.reason)
                    continue

                relative = '/' + os.path.relpath(entry.path, root)
                if any(matcher(relative) for matcher in matchers):
                    excluded += 1
                    excluded_bytes += entry.size
                else:
                    out.write(entry.path + '\0')
                    included += 1

                if self.on_count is not None:
                    now = time.monotonic()
                    if now - last_report >= COUNTER_INTERVAL:
                        self.on_count(included + excluded, included, excluded)
                        last_report = now

        if self.on_count is not None:
            self.on_count(included + excluded, included, excluded)
        if warnings:
            logger.warning('Skipped %d entries due to access errors.',
                           len(warnings))
        logger.info('Found %d files, with %d exclusions.', included, excluded)

        return Manifest(
            path=manifest_path,
            included=included,
            excluded=excluded,
            excluded_bytes=excluded_bytes,
            warnings=tuple(warnings))
