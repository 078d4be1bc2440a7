# -*- coding: utf-8 -*-
import smtplib
import unittest
from unittest import mock

from arkhive.errors import NotificationError
from arkhive.notifier import NullNotifier, SmtpNotifier, notifier_for
from tests.fakes import make_config


def smtp_mock(target):
    """Patches ``target`` and returns (class mock, connection mock)."""
    patcher = mock.patch(target)
    cls = patcher.start()
    server = mock.MagicMock()
    cls.return_value.__enter__.return_value = server
    return patcher, cls, server


class TestSmtpNotifier(unittest.TestCase):
    def setUp(self):
        self.notifier = SmtpNotifier(
            'smtp.example.com', 587, 'tls', 'mailer', 'pw',
            'arkhive@example.com', 'ops@example.com',
            config_file='/etc/arkhive/config')

    def test_message(self):
        msg = self.notifier.build_message(False, 'Arkhive backup failed',
                                          'Remote file is empty')
        self.assertEqual('Arkhive backup failed', msg['Subject'])
        self.assertEqual('ops@example.com', msg['To'])
        body = msg.get_content()
        self.assertIn('Config File: /etc/arkhive/config', body)
        self.assertIn('Status: failure', body)
        self.assertIn('Remote file is empty', body)

    def test_send_with_starttls(self):
        patcher, cls, server = smtp_mock('smtplib.SMTP')
        self.addCleanup(patcher.stop)

        self.notifier.notify(True, 'subject', 'message')

        cls.assert_called_once_with('smtp.example.com', 587, timeout=30)
        server.starttls.assert_called_once_with()
        server.login.assert_called_once_with('mailer', 'pw')
        self.assertEqual(1, server.send_message.call_count)

    def test_send_with_ssl(self):
        patcher, cls, server = smtp_mock('smtplib.SMTP_SSL')
        self.addCleanup(patcher.stop)

        notifier = SmtpNotifier('smtp.example.com', None, 'ssl',
                                sender='a@example.com', recipient='b@example.com')
        notifier.notify(True, 'subject', 'message')

        cls.assert_called_once_with('smtp.example.com', 465, timeout=30)
        server.starttls.assert_not_called()
        server.login.assert_not_called()

    def test_send_failure(self):
        patcher, cls, server = smtp_mock('smtplib.SMTP')
        self.addCleanup(patcher.stop)
        server.send_message.side_effect = smtplib.SMTPRecipientsRefused({})

        with self.assertRaises(NotificationError):
            self.notifier.notify(False, 'subject', 'message')


class TestNotifierFor(unittest.TestCase):
    def test_disabled(self):
        self.assertIsInstance(notifier_for(make_config()), NullNotifier)

    def test_enabled(self):
        notifier = notifier_for(make_config(
            notify=True, smtp_host='smtp.example.com', smtp_port=2525,
            smtp_encryption='none', smtp_from='a@example.com',
            smtp_to='b@example.com'))
        self.assertIsInstance(notifier, SmtpNotifier)
        self.assertEqual(2525, notifier.port)
        self.assertEqual('/etc/arkhive/config', notifier.config_file)


if __name__ == '__main__':
    unittest.main()
