# -*- coding: utf-8 -*-
"""Database dumps.

Dumps are written next to the files being backed up, so they end up in
the archive. Passwords are handed over through the environment
(``MYSQL_PWD``, ``PGPASSWORD``) and never appear on a command line.
"""
import logging
import os

from .errors import DumpError
from .runner import Pipeline, Stage, meter_stage
from .utils import binary_exists

logger = logging.getLogger(__name__)


class Dumper(object):
    """Base class for database dumps.

    Subclasses provide the dump and size query stages.
    """
    title = None
    file_suffix = None

    def __init__(self, config, runner):
        self.config = config
        self.runner = runner

    def required_binaries(self, with_estimate):
        raise NotImplementedError

    def dump_stage(self):
        raise NotImplementedError

    def size_query_stage(self):
        raise NotImplementedError

    def environment(self):
        return {}

    def dump_path(self, date):
        return os.path.join(self.config.backup_directory,
                            '{}-{}'.format(date, self.file_suffix))

    def estimate_size(self):
        """Approximate size of the dumped databases in bytes."""
        pipeline = Pipeline.of(self.size_query_stage()).with_env(
            **self.environment())
        result = self.runner.run(pipeline)
        if not result.ok:
            raise DumpError(
                'Cannot estimate {} size'.format(self.title),
                command=pipeline.render(),
                returncode=result.exit_code,
                stderr=result.stderr)
        return parse_size(result.stdout)

    def dump(self, date, with_progress=False, on_progress=None):
        """Writes the dump file for ``date`` and returns its path.

        :param with_progress: Pipe the dump through pv, sized by
            ``estimate_size()``.
        :raises DumpError: If the dump fails.
        """
        dest = self.dump_path(date)
        meter = None
        if with_progress:
            meter = meter_stage(self.estimate_size())

        pipeline = Pipeline.of(self.dump_stage(), meter).into(dest).with_env(
            **self.environment())

        logger.info('Creating %s dump -> %s ...', self.title, dest)
        result = self.runner.run(pipeline, on_progress)
        if not result.ok:
            raise DumpError(
                '{} dump failed'.format(self.title),
                command=pipeline.render(),
                returncode=result.exit_code,
                stderr=result.stderr)
        return dest


class MysqlDumper(Dumper):
    """Dumps MySQL or MariaDB with mariadb-dump (preferred) or mysqldump.

    A database list of ``*`` dumps all databases.
    """
    title = 'MySQL'
    file_suffix = 'mysqldump.sql'

    @property
    def binary(self):
        for name in ('mariadb-dump', 'mysqldump'):
            if binary_exists(name):
                return name
        return None

    @property
    def all_databases(self):
        return '*' in self.config.mysql_databases

    def required_binaries(self, with_estimate):
        needed = [self.binary or 'mysqldump']
        if with_estimate:
            needed.append('mysql')
        return needed

    def environment(self):
        if self.config.mysql_password:
            return {'MYSQL_PWD': self.config.mysql_password}
        return {}

    def _credentials(self):
        return ('--user={}'.format(self.config.mysql_user),
                '--host={}'.format(self.config.mysql_host))

    def dump_stage(self):
        if self.all_databases:
            targets = ('--all-databases',)
        else:
            targets = ('--databases',) + tuple(self.config.mysql_databases)
        return Stage(self.binary or 'mysqldump', self._credentials() + (
            '--quick', '--opt', '--skip-lock-tables', '--routines',
            '--triggers') + targets)

    def size_query_stage(self):
        sql = 'SELECT SUM(data_length+index_length) FROM information_schema.tables'
        if not self.all_databases:
            names = ','.join("'{}'".format(db.replace("'", "''"))
                             for db in self.config.mysql_databases)
            sql += ' WHERE table_schema IN ({})'.format(names)
        return Stage('mysql', self._credentials() + (
            '--batch', '--skip-column-names', '-e', sql))


class PgsqlDumper(Dumper):
    """Dumps the first database of ``PGSQL_DATABASES`` in custom format."""
    title = 'PostgreSQL'
    file_suffix = 'pgsqldump.sql'

    @property
    def database(self):
        return self.config.pgsql_databases[0]

    def required_binaries(self, with_estimate):
        needed = ['pg_dump']
        if with_estimate:
            needed.append('psql')
        return needed

    def environment(self):
        if self.config.pgsql_password:
            return {'PGPASSWORD': self.config.pgsql_password}
        return {}

    def _credentials(self):
        return ('-h', self.config.pgsql_host, '-U', self.config.pgsql_user,
                '-d', self.database)

    def dump_stage(self):
        return Stage('pg_dump', self._credentials() + (
            '--no-owner', '--no-privileges', '--format=custom'))

    def size_query_stage(self):
        sql = "SELECT pg_database_size('{}')".format(
            self.database.replace("'", "''"))
        return Stage('psql', self._credentials() + ('-t', '-A', '-c', sql))


def parse_size(output):
    """Reads the number printed by a size query; NULL or nothing is 0."""
    for line in reversed(output.splitlines()):
        line = line.strip()
        if line.isdigit():
            return int(line)
    return 0


def configured_dumpers(config, runner):
    """The dumpers enabled in ``config``, MySQL first."""
    dumpers = []
    if config.with_mysql:
        dumpers.append(MysqlDumper(config, runner))
    if config.with_pgsql:
        dumpers.append(PgsqlDumper(config, runner))
    return dumpers
