# -*- coding: utf-8 -*-
"""Runs external commands and pipelines of commands.

A command is either a plain shell string (run through ``/bin/sh``) or a
``Pipeline`` of ``Stage`` objects, which is run as real processes wired
together with OS pipes and no shell in between.

Output of the running processes is drained without blocking, so that the
progress lines ``pv -f`` writes to stderr can be turned into
``ProgressSnapshot`` objects while the pipeline is still running. pv
redraws its line with carriage returns, so streams are split on both
``\\r`` and ``\\n``.
"""
import logging
import os
import re
import shlex
import subprocess
import time
from typing import NamedTuple, Optional, Tuple

from .constants import POLL_INTERVAL
from .errors import ProcessSpawnError

logger = logging.getLogger(__name__)

REDACTED = '****'
# Stands in for secrets while quoting; made of characters shlex leaves alone.
MASK = 'ARKHIVE_REDACTED'

LINE_BREAK_RE = re.compile(rb'[\r\n]')

# <size> <elapsed> [<speed>/s] [<bar>] <percent>% ETA <eta>
PROGRESS_RE = re.compile(
    r'^\s*(?P<transferred>\d+(?:[.,]\d+)?\s?[KMGTPEZY]?i?B)'
    r'\s+(?P<elapsed>\d+(?::\d{1,2})+)'
    r'(?:\s+\[\s*(?P<speed>[^\]]*?/s)\s*\])?'
    r'(?:\s+\[[^\]]*\])?'
    r'\s+(?P<percent>\d{1,3})%'
    r'\s+ETA\s+(?P<eta>\d+(?::\d{1,2})+)\s*$')


class ProgressSnapshot(NamedTuple):
    percent: int
    transferred: str
    elapsed: int
    speed: str
    eta: int


class ProgressSink(object):
    """Receives progress of long running steps. Does nothing by default."""

    def update(self, label, snapshot):
        """A new ``ProgressSnapshot`` for the step called ``label``."""

    def count(self, scanned, included, excluded):
        """Running file counter while a directory is enumerated."""

    def finish(self):
        """The current step is over."""


class ProcessResult(NamedTuple):
    exit_code: int
    stdout: str
    stderr: str

    @property
    def ok(self):
        return self.exit_code == 0


class Stage(NamedTuple):
    """One external process of a pipeline.

    ``secrets`` lists argument fragments that must never show up in logs
    or error messages.
    """
    program: str
    args: Tuple[str, ...] = ()
    secrets: Tuple[str, ...] = ()

    @property
    def argv(self):
        return [self.program] + [str(a) for a in self.args]

    def render(self):
        return ' '.join(quote_redacted(a, self.secrets)
                        for a in self.argv)


class Pipeline(NamedTuple):
    """An immutable chain of stages, ``stage1 | stage2 | ... [> file]``.

    ``env`` holds extra environment variables for every stage. They are
    never rendered.
    """
    stages: Tuple[Stage, ...] = ()
    stdout_path: Optional[str] = None
    env: Tuple[Tuple[str, str], ...] = ()

    @classmethod
    def of(cls, *stages):
        """Builds a pipeline, skipping stages that are None."""
        return cls(tuple(s for s in stages if s is not None))

    def pipe(self, stage):
        if stage is None:
            return self
        return self._replace(stages=self.stages + (stage,))

    def into(self, path):
        return self._replace(stdout_path=str(path))

    def with_env(self, **env):
        return self._replace(env=self.env + tuple(sorted(env.items())))

    def render(self):
        text = ' | '.join(stage.render() for stage in self.stages)
        if self.stdout_path:
            text += ' > {}'.format(shlex.quote(self.stdout_path))
        return text


def redact(text, secrets, mask=REDACTED):
    for secret in secrets:
        if secret:
            text = text.replace(secret, mask)
    return text


def quote_redacted(arg, secrets):
    """Shell quotes ``arg`` with every secret shown as ``****``."""
    return shlex.quote(redact(arg, secrets, MASK)).replace(MASK, REDACTED)


def to_seconds(text):
    """Converts ``h:mm:ss`` (or ``m:ss``) into seconds.

    Each colon separated group is weighted by 60 to the power of its
    position counted from the right.
    """
    groups = reversed(text.strip().split(':'))
    return sum(int(g) * 60 ** idx for idx, g in enumerate(groups))


def parse_progress_line(line):
    """Returns a ``ProgressSnapshot`` for a pv progress line, else None."""
    match = PROGRESS_RE.match(line)
    if match is None:
        return None
    return ProgressSnapshot(
        percent=max(0, min(100, int(match.group('percent')))),
        transferred=match.group('transferred'),
        elapsed=to_seconds(match.group('elapsed')),
        speed=match.group('speed') or '',
        eta=to_seconds(match.group('eta')))


def meter_stage(size):
    """A ``pv`` stage reporting progress against ``size`` bytes.

    The size is clamped to 1, pv renders no usable bar for 0.
    """
    return Stage('pv', ('-f', '-s', str(max(int(size), 1))))


class _StreamBuffer(object):
    """Reads a pipe and hands out complete CR/LF terminated fragments.

    The trailing fragment that has no terminator yet is kept until the
    next read, or until the stream ends.
    """
    def __init__(self, stream):
        self.stream = stream
        self.fd = stream.fileno()
        self.pending = b''
        self.eof = False

    def set_blocking(self, blocking):
        os.set_blocking(self.fd, blocking)

    def read(self):
        """Returns whatever is available without blocking (if the pipe is
        in non-blocking mode)."""
        chunks = []
        while not self.eof:
            try:
                data = os.read(self.fd, 65536)
            except BlockingIOError:
                break
            if not data:
                self.eof = True
                break
            chunks.append(data)
        return b''.join(chunks)

    def read_lines(self):
        self.pending += self.read()
        fragments = LINE_BREAK_RE.split(self.pending)
        self.pending = fragments.pop()
        if self.eof and self.pending:
            fragments.append(self.pending)
            self.pending = b''
        return fragments

    def close(self):
        self.stream.close()


class ProcessRunner(object):
    """Spawns commands and collects exit code, stdout and stderr.

    Never writes to the processes' stdin. Polls every ``poll_interval``
    seconds while processes are alive.
    """
    def __init__(self, poll_interval=POLL_INTERVAL):
        self.poll_interval = poll_interval

    def run(self, command, on_progress=None):
        """Runs ``command`` until it exits.

        :param command: A shell string or a ``Pipeline``.
        :param on_progress: Called with a ``ProgressSnapshot`` for every pv
            progress line seen on stderr. Those lines are left out of the
            returned stderr.
        :return: ``ProcessResult``. For pipelines the exit code is the
            one of the rightmost failing stage.
        :raises ProcessSpawnError: If a process cannot be created.
        """
        if isinstance(command, Pipeline):
            logger.debug('Running: %s', command.render())
            procs, stdout, stderr = self._spawn_pipeline(command)
        else:
            logger.debug('Running: %s', command)
            procs, stdout, stderr = self._spawn_shell(command)

        out = _StreamBuffer(stdout) if stdout is not None else None
        err = _StreamBuffer(stderr)
        buffers = [b for b in (out, err) if b is not None]
        collected = []
        errors = []

        try:
            for buf in buffers:
                buf.set_blocking(False)

            while any(p.poll() is None for p in procs):
                if out is not None:
                    collected.append(out.read())
                self._consume_stderr(err.read_lines(), errors, on_progress)
                time.sleep(self.poll_interval)

            for buf in buffers:
                buf.set_blocking(True)
            if out is not None:
                collected.append(out.read())
            self._consume_stderr(err.read_lines(), errors, on_progress)
        finally:
            for proc in procs:
                if proc.poll() is None:
                    proc.kill()
                proc.wait()
            for buf in buffers:
                buf.close()

        failing = [p.returncode for p in procs if p.returncode != 0]
        return ProcessResult(
            exit_code=failing[-1] if failing else 0,
            stdout=b''.join(collected).decode('utf-8', 'replace').rstrip(),
            stderr='\n'.join(errors).rstrip())

    def _consume_stderr(self, fragments, errors, on_progress):
        for raw in fragments:
            line = raw.decode('utf-8', 'replace')
            snapshot = parse_progress_line(line)
            if snapshot is not None:
                if on_progress is not None:
                    on_progress(snapshot)
                continue
            if line.strip():
                errors.append(line)

    def _spawn_shell(self, command):
        try:
            proc = subprocess.Popen(
                command,
                shell=True,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE)
        except OSError as e:
            raise ProcessSpawnError(
                'Could not create process: {}'.format(e), command=command)
        return [proc], proc.stdout, proc.stderr

    def _spawn_pipeline(self, pipeline):
        if not pipeline.stages:
            raise ValueError('Cannot run an empty pipeline.')

        env = None
        if pipeline.env:
            env = dict(os.environ)
            env.update(pipeline.env)

        err_read, err_write = os.pipe()
        procs = []
        sink = None
        try:
            if pipeline.stdout_path:
                try:
                    sink = open(pipeline.stdout_path, 'wb')
                except OSError as e:
                    raise ProcessSpawnError(
                        'Cannot open {} for writing: {}'.format(
                            pipeline.stdout_path, e),
                        command=pipeline.render())

            upstream = subprocess.DEVNULL
            last = len(pipeline.stages) - 1
            for idx, stage in enumerate(pipeline.stages):
                if idx == last and sink is not None:
                    downstream = sink
                else:
                    downstream = subprocess.PIPE
                try:
                    proc = subprocess.Popen(
                        stage.argv,
                        stdin=upstream,
                        stdout=downstream,
                        stderr=err_write,
                        env=env)
                except OSError as e:
                    raise ProcessSpawnError(
                        'Could not create process {}: {}'.format(
                            stage.program, e),
                        command=pipeline.render())
                # The parent must not keep the read end of the upstream
                # pipe, or the upstream stage never sees SIGPIPE.
                if procs:
                    procs[-1].stdout.close()
                procs.append(proc)
                upstream = proc.stdout
        except BaseException:
            for proc in procs:
                if proc.poll() is None:
                    proc.kill()
                proc.wait()
                if proc.stdout is not None:
                    proc.stdout.close()
            os.close(err_read)
            raise
        finally:
            os.close(err_write)
            if sink is not None:
                sink.close()

        stdout = procs[-1].stdout if sink is None else None
        return procs, stdout, os.fdopen(err_read, 'rb', buffering=0)
