# -*- coding: utf-8 -*-
"""Backup and restore against a local directory standing in for the
backup host. Needs tar, gzip and openssl."""
import datetime
import os
import shutil
import tempfile
import unittest

from arkhive.backups import BackupOrchestrator
from arkhive.config import CompressionKind
from arkhive.restore import RestoreOrchestrator
from arkhive.runner import ProcessRunner
from arkhive.utils import binary_exists
from tests.fakes import LocalClient, current_user, make_config

TODAY = datetime.date(2025, 2, 1)
REQUIRED = ('tar', 'gzip', 'openssl', 'whoami', 'stat', 'find')


def create_files(base):
    """Creates a small tree with text and random binary content."""
    files = {
        'index.html': b'<html></html>\n',
        'uploads/2024/photo.bin': os.urandom(512 * 1024),
        'uploads/2024/notes with spaces.txt': b'spaces\n',
        'uploads/2024/line\nbreak.txt': b'newline\n',
        'uploads/2024/back\\slash.txt': b'backslash\n',
        'deep/a/b/c/d.txt': b'deep\n' * 1000,
        'logs/app.log': b'should not be restored\n',
    }
    for rel, content in files.items():
        path = os.path.join(base, rel)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, 'wb') as f:
            f.write(content)
    return files


@unittest.skipUnless(all(binary_exists(b) for b in REQUIRED),
                     'needs {}'.format(', '.join(REQUIRED)))
class TestRoundTrip(unittest.TestCase):
    def setUp(self):
        self.tmp_dir = tempfile.mkdtemp()
        self.source = os.path.join(self.tmp_dir, 'source')
        self.remote_home = os.path.join(self.tmp_dir, 'remote')
        self.destination = os.path.join(self.tmp_dir, 'restored')
        os.makedirs(os.path.join(self.remote_home, '2024-01-01'))
        os.makedirs(self.destination)
        self.files = create_files(self.source)

        self.runner = ProcessRunner(poll_interval=0.01)
        self.remote = LocalClient(self.runner)
        self.config = make_config(
            backup_directory=self.source,
            ssh_user=current_user(),
            ssh_backup_home=self.remote_home,
            compression=CompressionKind.GZIP,
            exclusion_patterns=('*.log',),
            with_crypt=True,
            crypt_password='correct horse battery staple')

    def tearDown(self):
        shutil.rmtree(self.tmp_dir)

    def test_backup_and_restore(self):
        outcome = BackupOrchestrator(self.config, self.remote, self.runner,
                                     today=TODAY).run()
        self.assertTrue(outcome.ok, outcome.error and
                        outcome.error.format_message())

        archive = os.path.join(
            self.remote_home, '2025-02-01',
            '2025-02-01-{}-arkhive.enc.arbk'.format(current_user()))
        self.assertTrue(os.path.isfile(archive))
        self.assertEqual(os.path.getsize(archive), outcome.size)
        self.assertGreater(outcome.size, 0)
        self.assertFalse(os.path.exists(
            os.path.join(self.remote_home, '2024-01-01')))

        restore = RestoreOrchestrator(self.config, self.remote, self.runner)
        self.assertEqual(['2025-02-01'], restore.list_remote_dates())
        outcome = restore.run('2025-02-01', self.destination)
        self.assertTrue(outcome.ok, outcome.error and
                        outcome.error.format_message())

        # tar stores the absolute source paths without the leading slash.
        restored_root = os.path.join(self.destination,
                                     self.source.lstrip(os.sep))
        for rel, content in self.files.items():
            path = os.path.join(restored_root, rel)
            if rel.endswith('.log'):
                self.assertFalse(os.path.exists(path))
                continue
            with open(path, 'rb') as f:
                self.assertEqual(content, f.read(), rel)

    def test_wrong_password(self):
        BackupOrchestrator(self.config, self.remote, self.runner,
                           today=TODAY).execute()

        config = self.config._replace(crypt_password='wrong')
        outcome = RestoreOrchestrator(config, self.remote, self.runner).run(
            '2025-02-01', self.destination)
        self.assertFalse(outcome.ok)
        self.assertEqual('decrypt-extract', outcome.error.kind.value)


if __name__ == '__main__':
    unittest.main()
