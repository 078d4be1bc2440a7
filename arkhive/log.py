# -*- coding: utf-8 -*-
import logging

import click

COLORS = {
    logging.DEBUG: 'blue',
    logging.INFO: 'green',
    logging.WARNING: 'yellow',
    logging.ERROR: 'red',
    logging.CRITICAL: 'red',
}


class ClickHandler(logging.Handler):
    """Echoes log records to the terminal, coloured by level.

    Warnings and errors go to stderr.
    """
    def emit(self, record):
        try:
            msg = self.format(record)
            click.echo(click.style(msg, fg=COLORS.get(record.levelno)),
                       err=record.levelno >= logging.WARNING)
        except Exception:
            self.handleError(record)


def setup_logging(debug=False):
    """Routes the ``arkhive`` loggers to a ``ClickHandler``.

    :param debug: Also show DEBUG records, among them every command run.
    """
    logger = logging.getLogger('arkhive')
    logger.setLevel(logging.DEBUG if debug else logging.INFO)
    logger.handlers = [h for h in logger.handlers
                       if not isinstance(h, ClickHandler)]

    handler = ClickHandler()
    if debug:
        handler.setFormatter(logging.Formatter(
            '%(asctime)s %(name)s: %(message)s', datefmt='%H:%M:%S'))
    else:
        handler.setFormatter(logging.Formatter('%(message)s'))
    logger.addHandler(handler)
    logger.propagate = False
    return logger
