# -*- coding: utf-8 -*-
import datetime
import logging
import shlex

from .constants import DATE_DIR_RE, DATE_FORMAT
from .utils import parse_date

logger = logging.getLogger(__name__)


class Cleaner(object):
    """Prunes dated backup directories on the remote host.

    Backups live in one ``YYYY-MM-DD`` directory per day below the
    remote backup home. Every such directory older than ``days_to_keep``
    days is removed. Other entries are never touched.

    :param days_to_keep: Size of the retention window. 0 keeps everything.
    :param compare_time: The date the window is measured from, today if
        None.
    """
    def __init__(self, days_to_keep, compare_time=None):
        if days_to_keep < 0:
            raise ValueError('days_to_keep must not be negative')
        self.days_to_keep = days_to_keep
        self.compare_time = compare_time or datetime.date.today()

    @property
    def oldest_date_to_keep(self):
        return self.compare_time - datetime.timedelta(days=self.days_to_keep)

    def clean(self, remote, storage_dir, dry_run=False):
        """Removes outdated backup directories from ``storage_dir``.

        :param remote: Client used to list and remove remote directories.
        :param storage_dir: Remote backup home.
        :param dry_run: Only log what would be removed.
        :return: The names of the removed directories.
        """
        if not self.days_to_keep:
            logger.info('Retention disabled, keeping all remote backups.')
            return []

        logger.info('Retrieving list of remote backup directories...')
        listing = remote.exec('ls -1 {}'.format(shlex.quote(storage_dir)))
        outdated = self._get_dirs_to_delete(listing.splitlines())

        for name in outdated:
            path = '{}/{}'.format(storage_dir.rstrip('/'), name)
            if dry_run:
                logger.info('Marked for removal: %s', path)
                continue
            logger.info('Removing old backup dir: %s', name)
            remote.exec('rm -rf {}'.format(shlex.quote(path)))

        return outdated

    def _get_dirs_to_delete(self, names):
        """Returns the dated names strictly older than the window.

        :param names: Directory names, possibly with surrounding whitespace.
        :return: A sorted list of names.
        """
        if not self.days_to_keep:
            return []

        cutoff = self.oldest_date_to_keep
        to_remove = list()
        for name in (n.strip() for n in names):
            if not DATE_DIR_RE.match(name):
                continue
            dt = parse_date(name)
            if dt is None:
                logger.debug('Ignoring %s, not a valid %s date',
                             name, DATE_FORMAT)
                continue
            if dt < cutoff:
                to_remove.append(name)

        return sorted(to_remove)
