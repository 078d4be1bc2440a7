# -*- coding: utf-8 -*-
"""Access to the backup host over SSH."""
import logging
import shlex

from .errors import RemoteCommandError
from .runner import Pipeline, ProcessRunner, Stage

logger = logging.getLogger(__name__)


class SshClient(object):
    """Runs commands on, and moves files to and from, the backup host.

    Connections are non-interactive (``BatchMode``), so key based
    authentication must be set up. ``connect_timeout`` bounds how long a
    connection attempt may take; running commands are not interrupted.
    """
    required_binaries = ('ssh', 'scp')

    def __init__(self, host, user, port=22, connect_timeout=10, runner=None):
        self.host = host
        self.user = user
        self.port = port
        self.connect_timeout = connect_timeout
        self.runner = runner or ProcessRunner()

    @classmethod
    def from_config(cls, config, runner=None):
        return cls(config.ssh_host, config.ssh_user, config.ssh_port,
                   config.ssh_connect_timeout, runner=runner)

    @property
    def target(self):
        return '{}@{}'.format(self.user, self.host)

    def _options(self, port_flag):
        return (port_flag, str(self.port),
                '-o', 'BatchMode=yes',
                '-o', 'ConnectTimeout={}'.format(self.connect_timeout))

    def exec(self, command):
        """Runs ``command`` through the remote shell.

        :return: Trimmed stdout.
        :raises RemoteCommandError: On connection failure or non-zero exit.
        """
        stage = Stage('ssh', self._options('-p') + (self.target, command))
        result = self.runner.run(Pipeline.of(stage))
        if not result.ok:
            raise RemoteCommandError(
                'SSH command failed on {}'.format(self.host),
                command=stage.render(),
                returncode=result.exit_code,
                stderr=result.stderr)
        return result.stdout.strip()

    def file_exists(self, path):
        quoted = shlex.quote(path)
        answer = self.exec('if [ -f {} ]; then echo yes; else echo no; fi'
                           .format(quoted))
        return answer == 'yes'

    def file_size(self, path):
        """Size of the remote file in bytes, 0 if it is missing."""
        answer = self.exec('stat -c %s {} 2>/dev/null || echo 0'.format(
            shlex.quote(path)))
        try:
            return int(answer.split()[-1])
        except (IndexError, ValueError):
            return 0

    def upload_stage(self, remote_path):
        """A stage writing its stdin into ``remote_path``."""
        return Stage('ssh', self._options('-p') + (
            self.target, 'cat > {}'.format(shlex.quote(remote_path))))

    def download_stage(self, remote_path, local_path):
        """A stage copying ``remote_path`` to ``local_path``."""
        return Stage('scp', ('-q',) + self._options('-P') + (
            '{}:{}'.format(self.target, remote_path), local_path))


def ssh_exec(host, user, port, command):
    """Runs ``command`` on ``user@host:port`` and returns trimmed stdout."""
    return SshClient(host, user, port).exec(command)
