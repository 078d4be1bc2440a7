# -*- coding: utf-8 -*-
import logging
import os

import click

from .backups import BackupOrchestrator
from .config import find_config, load_config
from .constants import (ERR_NO_REMOTE_BACKUPS, HELP_CONF, HELP_DATE,
                        HELP_DISK_SPACE_CHECK, HELP_PROGRESS)
from .errors import NotificationError, ProcessSpawnError
from .log import setup_logging
from .notifier import notifier_for
from .restore import RestoreOrchestrator
from .runner import ProgressSink
from .utils import human_filesize, parse_date

logger = logging.getLogger(__name__)


class ConsoleProgress(ProgressSink):
    """Rewrites one terminal line with the latest progress."""

    def __init__(self):
        self.active = False

    def _echo(self, msg):
        click.echo('\r', nl=False)
        click.echo(click.style(msg, fg='yellow'), nl=False)
        self.active = True

    def update(self, label, snapshot):
        self._echo('{}: {:3d}% {} {} ETA {}s   '.format(
            label, snapshot.percent, snapshot.transferred, snapshot.speed,
            snapshot.eta))

    def count(self, scanned, included, excluded):
        self._echo('Scanned {} files: {} included, {} excluded   '.format(
            scanned, included, excluded))

    def finish(self):
        if self.active:
            click.echo('')
        self.active = False


def _load(conf):
    path = find_config(conf)
    return load_config(path)


def _notify_failure(notifier, subject, error):
    """Reports ``error``. Delivery failures are logged, not raised."""
    try:
        notifier.notify(False, '{} failed'.format(subject),
                        error.format_message())
    except NotificationError as e:
        logger.error(e.format_message())


def _finish(notifier, outcome, subject, success_message):
    """Notifies once about ``outcome`` and raises its error, if any."""
    if outcome.ok:
        notifier.notify(True, '{} succeeded'.format(subject), success_message)
        return
    _notify_failure(notifier, subject, outcome.error)
    raise outcome.error


def _run(notifier, subject, func):
    try:
        return func()
    except ProcessSpawnError as e:
        _notify_failure(notifier, subject, e)
        raise


@click.group()
@click.option('--debug/--no-debug', default=False)
def cli(debug):
    """Encrypted offsite backups over SSH.

    A directory, optionally along with MySQL/MariaDB and PostgreSQL dumps,
    is archived, compressed, encrypted and streamed to a remote host in a
    single pipeline. Nothing but the database dumps is written locally.

    Settings are read from a .env style config file. Use the ``--conf``
    flag to pass one explicitly.

    See further help for the available subcommands backup, restore and
    list.
    """
    setup_logging(debug)


@cli.command()
@click.option('--conf', default=None, help=HELP_CONF)
@click.option('--with-disk-space-check', is_flag=True, default=False,
              help=HELP_DISK_SPACE_CHECK)
@click.option('--with-progress', is_flag=True, default=False,
              help=HELP_PROGRESS)
def backup(conf, with_disk_space_check, with_progress):
    """Run a backup.

    Old backups outside of BACKUP_RETENTION_DAYS are removed from the
    remote host first.
    """
    config = _load(conf)
    notifier = notifier_for(config)
    orchestrator = BackupOrchestrator(
        config,
        with_disk_space_check=with_disk_space_check,
        with_progress=with_progress,
        progress=ConsoleProgress())

    outcome = _run(notifier, 'Arkhive backup', orchestrator.run)
    message = 'Backup of {} uploaded to {}:{} ({}).'.format(
        config.backup_directory, config.ssh_host,
        orchestrator.descriptor.remote_path,
        human_filesize(outcome.size or 0))
    _finish(notifier, outcome, 'Arkhive backup', message)
    click.echo(click.style(message, fg='green'))


@cli.command()
@click.argument('destination', required=False)
@click.option('--date', default=None, help=HELP_DATE)
@click.option('--conf', default=None, help=HELP_CONF)
def restore(destination, date, conf):
    """Restore a backup into DESTINATION.

    Without ``--date`` the dated backups on the remote host are listed and
    one is picked interactively. DESTINATION is asked for if omitted and
    created if it does not exist.
    """
    config = _load(conf)
    notifier = notifier_for(config)
    orchestrator = RestoreOrchestrator(config)

    if date is None:
        dates = orchestrator.list_remote_dates()
        if not dates:
            raise click.ClickException(ERR_NO_REMOTE_BACKUPS)
        date = click.prompt('Select a date to restore',
                            type=click.Choice(dates), default=dates[-1])
    elif parse_date(date) is None:
        raise click.BadParameter('expected YYYY-MM-DD', param_hint='--date')

    if not destination:
        destination = click.prompt(
            'Please specify a local destination directory to restore into')
    destination = os.path.abspath(os.path.expanduser(destination))
    if not os.path.isdir(destination):
        try:
            os.makedirs(destination, 0o755)
        except OSError as e:
            raise click.ClickException(
                'Cannot create destination {}: {}'.format(destination, e))

    outcome = _run(notifier, 'Arkhive restore',
                   lambda: orchestrator.run(date, destination))
    message = 'Backup of {} restored into {}.'.format(date, destination)
    _finish(notifier, outcome, 'Arkhive restore', message)
    click.echo(click.style(message, fg='green'))


@cli.command(name='list')
@click.option('--conf', default=None, help=HELP_CONF)
def list_backups(conf):
    """List the dated backups on the remote host."""
    config = _load(conf)
    for date in RestoreOrchestrator(config).list_remote_dates():
        click.echo(date)
