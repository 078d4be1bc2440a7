# -*- coding: utf-8 -*-
"""Mail notifications about finished runs."""
import logging
import smtplib
import socket
import time
from email.message import EmailMessage

from .errors import NotificationError

logger = logging.getLogger(__name__)

DEFAULT_PORTS = {
    'ssl': 465,
    'tls': 587,
}

BODY_TEMPLATE = """Arkhive Notification

Hostname: {hostname}
Elapsed Time: {elapsed} minutes
Config File: {config_file}
Status: {status}

Output:
{message}

This is an automated notification from arkhive.
"""


class NullNotifier(object):
    """Used when notifications are turned off."""

    def notify(self, success, subject, message):
        logger.debug('Notifications disabled, not sending %r', subject)


class SmtpNotifier(object):
    """Sends a plain text mail through an SMTP server.

    ``encryption`` is one of ``ssl`` (implicit TLS), ``tls`` (STARTTLS)
    or anything else for an unencrypted connection.
    """
    def __init__(self, host, port=None, encryption='tls', user=None,
                 password=None, sender=None, recipient=None,
                 config_file=None, timeout=30):
        self.host = host
        self.encryption = (encryption or '').lower()
        self.port = port or DEFAULT_PORTS.get(self.encryption, 25)
        self.user = user
        self.password = password
        self.sender = sender
        self.recipient = recipient
        self.config_file = config_file
        self.timeout = timeout
        self.started = time.monotonic()

    @classmethod
    def from_config(cls, config):
        return cls(config.smtp_host, config.smtp_port, config.smtp_encryption,
                   config.smtp_user, config.smtp_password, config.smtp_from,
                   config.smtp_to, config_file=config.source)

    def build_message(self, success, subject, message):
        elapsed = round((time.monotonic() - self.started) / 60, 2)
        msg = EmailMessage()
        msg['Subject'] = subject
        msg['From'] = self.sender
        msg['To'] = self.recipient
        msg.set_content(BODY_TEMPLATE.format(
            hostname=socket.gethostname(),
            elapsed=elapsed,
            config_file=self.config_file,
            status='success' if success else 'failure',
            message=message))
        return msg

    def _connect(self):
        if self.encryption == 'ssl':
            return smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout)
        return smtplib.SMTP(self.host, self.port, timeout=self.timeout)

    def notify(self, success, subject, message):
        """Sends the notification.

        :raises NotificationError: If the mail cannot be delivered.
        """
        msg = self.build_message(success, subject, message)
        try:
            with self._connect() as server:
                if self.encryption == 'tls':
                    server.starttls()
                if self.user:
                    server.login(self.user, self.password or '')
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            raise NotificationError('Failed to send email: {}'.format(e))
        logger.info('Notification sent to %s', self.recipient)


def notifier_for(config):
    if config.notify:
        return SmtpNotifier.from_config(config)
    return NullNotifier()
