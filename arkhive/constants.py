# -*- coding: utf-8 -*-
import re


HELP_CONF = (
    "Location of configuration file. If omitted, the usual locations are "
    "searched (./.arkhive-config, ~/.config/arkhive/config, "
    "/etc/arkhive/config, ...).")

HELP_DISK_SPACE_CHECK = (
    "Estimate the size of the backup and make sure both the local and the "
    "remote side have enough free space before starting.")

HELP_PROGRESS = (
    "Show live progress of dumps and of the archive upload. Requires pv.")

HELP_DATE = (
    "Date of the backup to restore, in YYYY-MM-DD format. If omitted, the "
    "available dates are listed and you are asked to pick one.")

ERR_CONFIG_FILE_DOES_NOT_EXIST = (
    "Config file does not exist. Create any of:\n{}")

ERR_CONFIG_KEY_MISSING = (
    "Missing config key {} in {}.")

ERR_CONFIG_VALUE_INVALID = (
    "Invalid value {!r} for config key {} in {}.")

ERR_NO_REMOTE_BACKUPS = (
    "No dated backups found on remote host.")

# Remote naming.
ARCHIVE_NAME = 'arkhive'
DATE_FORMAT = '%Y-%m-%d'
DATE_DIR_RE = re.compile(r'^\d{4}-\d{2}-\d{2}$')

# Encryption. Both sides must agree on these.
CIPHER = '-aes-256-cbc'
PBKDF2_ITERATIONS = '100000'

# Disk space estimation: fraction of the raw size the archive is expected
# to take, with and without encryption overhead.
SIZE_FACTOR_CRYPT = 0.8
SIZE_FACTOR_PLAIN = 0.6

POLL_INTERVAL = 0.2
COUNTER_INTERVAL = 0.5
STDERR_TAIL_LINES = 10

CONFIG_FILE_NAMES = (
    '.arkhive-config',
    '.config/arkhive-config',
    '.config/arkhive/config',
)

ETC_CONFIG_FILES = (
    '/etc/arkhive-config',
    '/etc/arkhive/config',
)
