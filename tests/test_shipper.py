# -*- coding: utf-8 -*-
import unittest

from arkhive.config import CompressionKind
from arkhive.errors import TransferError
from arkhive.runner import ProcessResult
from arkhive.shipper import (BackupDescriptor, Shipper, remote_filename,
                             remote_path)
from tests.fakes import FakeRemote, FakeRunner, make_config


class TestRemoteNaming(unittest.TestCase):
    def test_file_names(self):
        self.assertEqual(
            '2025-02-01-backup-arkhive.enc.arbk',
            remote_filename('2025-02-01', 'backup', True, CompressionKind.GZIP))
        self.assertEqual(
            '2025-02-01-backup-arkhive.arbk.xz',
            remote_filename('2025-02-01', 'backup', False, CompressionKind.XZ))
        self.assertEqual(
            '2025-02-01-backup-arkhive.enc.tar',
            remote_filename('2025-02-01', 'backup', True, CompressionKind.NONE))

    def test_remote_path(self):
        self.assertEqual(
            '/backups/2025-02-01/2025-02-01-backup-arkhive.arbk',
            remote_path('/backups/', '2025-02-01', 'backup', False,
                        CompressionKind.GZIP))

    def test_descriptor(self):
        config = make_config(with_crypt=True, crypt_password='secret')
        descriptor = BackupDescriptor.for_config(config, '2025-02-01')
        self.assertTrue(descriptor.encrypted)
        self.assertEqual('/backups/2025-02-01', descriptor.remote_dir)


class TestShipper(unittest.TestCase):
    def setUp(self):
        self.remote = FakeRemote()
        self.runner = FakeRunner()

    def shipper(self, **kwargs):
        config = make_config(**kwargs)
        descriptor = BackupDescriptor.for_config(config, '2025-02-01')
        return Shipper(config, self.remote, self.runner), descriptor

    def test_full_pipeline(self):
        shipper, descriptor = self.shipper(with_crypt=True,
                                           crypt_password='secret')
        pipeline = shipper.get_pipeline('/tmp/manifest', descriptor, 4096)
        self.assertEqual(['tar', 'pv', 'gzip', 'openssl', 'fake-upload'],
                         [s.program for s in pipeline.stages])
        self.assertEqual(
            'tar -cf - --null --no-unquote -T /tmp/manifest | '
            'pv -f -s 4096 | gzip | '
            'openssl enc -aes-256-cbc -salt -pbkdf2 -iter 100000 '
            '-pass pass:**** | '
            'fake-upload /backups/2025-02-01/2025-02-01-backup-arkhive.enc.arbk',
            pipeline.render())

    def test_plain_pipeline(self):
        shipper, descriptor = self.shipper(compression=CompressionKind.NONE)
        pipeline = shipper.get_pipeline('/tmp/manifest', descriptor)
        self.assertEqual(['tar', 'fake-upload'],
                         [s.program for s in pipeline.stages])

    def test_xz_pipeline(self):
        shipper, descriptor = self.shipper(compression=CompressionKind.XZ)
        pipeline = shipper.get_pipeline('/tmp/manifest', descriptor)
        self.assertEqual(['xz', '-9'], pipeline.stages[1].argv)

    def test_ship_returns_remote_size(self):
        shipper, descriptor = self.shipper()
        self.remote.files[descriptor.remote_path] = 2048
        self.assertEqual(2048, shipper.ship('/tmp/manifest', descriptor))

    def test_empty_remote_file(self):
        """A successful pipeline that leaves no data is a failure."""
        shipper, descriptor = self.shipper()
        with self.assertRaises(TransferError):
            shipper.ship('/tmp/manifest', descriptor)

    def test_failing_pipeline(self):
        self.runner.handler = lambda command: ProcessResult(
            141, '', 'ssh: connect to host backup.example.com: Connection refused')
        shipper, descriptor = self.shipper(with_crypt=True,
                                           crypt_password='secret')
        with self.assertRaises(TransferError) as ctx:
            shipper.ship('/tmp/manifest', descriptor)
        self.assertEqual(141, ctx.exception.returncode)
        self.assertNotIn('secret', ctx.exception.format_message())
        self.assertIn('Connection refused', ctx.exception.format_message())


if __name__ == '__main__':
    unittest.main()
