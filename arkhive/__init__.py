# -*- coding: utf-8 -*-
"""
      Title: arkhive
      Usage: $ arkhive
             $ arkhive backup --help
             $ arkhive restore --help
             $ arkhive list --help
  Platforms: Linux

Description:
    Encrypted offsite backups of a directory and, optionally, of MySQL /
    MariaDB and PostgreSQL databases. The archive is built with tar,
    compressed with gzip or xz, encrypted with openssl and streamed to a
    remote host over SSH. Restores download the archive of a given day
    and unpack it into a local directory.

    Settings live in a .env style config file, see ``arkhive --help``.

    The tool is not daemonized and can be scheduled with cron jobs.

Dependencies:
    * Click
    * colorama
    * python-dotenv
    * tar, ssh, scp, gzip or xz, and openssl / pv / database clients as
      enabled in the config

"""
from .backups import BackupOrchestrator, BackupState, RunOutcome
from .cleaner import Cleaner
from .config import Config, CompressionKind, load_config
from .enumerator import ExclusionMatcher, FileEnumerator
from .restore import RestoreOrchestrator
from .runner import Pipeline, ProcessRunner, Stage

__version__ = '1.0.0'
