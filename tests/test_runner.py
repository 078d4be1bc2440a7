# -*- coding: utf-8 -*-
import os
import shutil
import tempfile
import unittest

from arkhive.errors import ProcessSpawnError
from arkhive.runner import (Pipeline, ProcessRunner, Stage, meter_stage,
                            parse_progress_line, to_seconds)

PV_LINE = ' 340MiB 0:00:07 [60.8MiB/s] [==>    ]  5% ETA 0:02:11'


class TestProgressParser(unittest.TestCase):
    def test_parse_pv_line(self):
        """All fields of a pv line are extracted."""
        snapshot = parse_progress_line(PV_LINE)
        self.assertEqual(5, snapshot.percent)
        self.assertEqual(7, snapshot.elapsed)
        self.assertEqual(131, snapshot.eta)
        self.assertEqual('60.8MiB/s', snapshot.speed)
        self.assertEqual('340MiB', snapshot.transferred)

    def test_parse_without_speed_and_bar(self):
        snapshot = parse_progress_line('1.5GiB 1:02:03 100% ETA 0:00:00')
        self.assertEqual(100, snapshot.percent)
        self.assertEqual(3723, snapshot.elapsed)
        self.assertEqual('', snapshot.speed)
        self.assertEqual(0, snapshot.eta)

    def test_other_lines_are_not_progress(self):
        self.assertIsNone(parse_progress_line(''))
        self.assertIsNone(parse_progress_line('tar: Removing leading `/\''))
        self.assertIsNone(parse_progress_line('5% done'))

    def test_to_seconds(self):
        self.assertEqual(131, to_seconds('0:02:11'))
        self.assertEqual(131, to_seconds('2:11'))
        self.assertEqual(3600, to_seconds('1:00:00'))

    def test_meter_stage_size_is_at_least_one(self):
        self.assertEqual(['pv', '-f', '-s', '1'], meter_stage(0).argv)
        self.assertEqual(['pv', '-f', '-s', '42'], meter_stage(42).argv)


class TestStageAndPipeline(unittest.TestCase):
    def test_render_redacts_secrets(self):
        stage = Stage('openssl', ('enc', '-pass', 'pass:hunter2'),
                      secrets=('hunter2',))
        self.assertEqual('openssl enc -pass pass:****', stage.render())

    def test_render_redacts_secrets_that_need_quoting(self):
        """No part of a quoted secret shows up in the rendered command."""
        stage = Stage('openssl', ('-pass', "pass:it's a secret",
                                  'user name secret'),
                      secrets=("it's a secret", 'secret'))
        rendered = stage.render()
        self.assertEqual("openssl -pass pass:**** 'user name ****'", rendered)
        self.assertNotIn('secret', rendered)

    def test_of_skips_missing_stages(self):
        pipeline = Pipeline.of(Stage('tar'), None, Stage('gzip'))
        self.assertEqual(['tar', 'gzip'], [s.program for s in pipeline.stages])

    def test_render_with_redirect(self):
        pipeline = Pipeline.of(Stage('pg_dump', ('-d', 'app'))).into(
            '/tmp/my dump.sql')
        self.assertEqual("pg_dump -d app > '/tmp/my dump.sql'",
                         pipeline.render())

    def test_environment_is_not_rendered(self):
        pipeline = Pipeline.of(Stage('mysqldump')).with_env(MYSQL_PWD='s3cr3t')
        self.assertNotIn('s3cr3t', pipeline.render())
        self.assertEqual((('MYSQL_PWD', 's3cr3t'),), pipeline.env)


class TestProcessRunner(unittest.TestCase):
    def setUp(self):
        self.runner = ProcessRunner(poll_interval=0.01)
        self.tmp_dir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.tmp_dir)

    def test_shell_exit_code_and_output(self):
        """Exit code is passed through and stdout is right-trimmed."""
        result = self.runner.run('echo hello; echo oops >&2; exit 3')
        self.assertEqual(3, result.exit_code)
        self.assertFalse(result.ok)
        self.assertEqual('hello', result.stdout)
        self.assertEqual('oops', result.stderr)

    def test_progress_lines_split_on_carriage_return(self):
        """pv lines go to the callback, everything else to stderr."""
        snapshots = []
        command = (
            "printf ' 340MiB 0:00:07 [60.8MiB/s] [==>    ]  5%% ETA 0:02:11"
            "\\r 680MiB 0:00:14 [60.8MiB/s] [====>  ] 10%% ETA 0:02:04\\r'"
            " >&2; echo warning >&2")
        result = self.runner.run(command, snapshots.append)
        self.assertTrue(result.ok)
        self.assertEqual([5, 10], [s.percent for s in snapshots])
        self.assertEqual('warning', result.stderr)

    def test_trailing_fragment_is_kept(self):
        result = self.runner.run('printf partial >&2')
        self.assertEqual('partial', result.stderr)

    def test_pipeline(self):
        pipeline = Pipeline.of(Stage('printf', ('abc',)),
                               Stage('tr', ('a-z', 'A-Z')))
        result = self.runner.run(pipeline)
        self.assertTrue(result.ok)
        self.assertEqual('ABC', result.stdout)

    def test_pipeline_exit_code_of_rightmost_failure(self):
        pipeline = Pipeline.of(Stage('sh', ('-c', 'exit 3')),
                               Stage('sh', ('-c', 'cat; exit 4')),
                               Stage('cat'))
        self.assertEqual(4, self.runner.run(pipeline).exit_code)

        pipeline = Pipeline.of(Stage('sh', ('-c', 'exit 3')), Stage('cat'))
        self.assertEqual(3, self.runner.run(pipeline).exit_code)

    def test_pipeline_into_file(self):
        path = os.path.join(self.tmp_dir, 'out.txt')
        result = self.runner.run(
            Pipeline.of(Stage('printf', ('data',))).into(path))
        self.assertTrue(result.ok)
        self.assertEqual('', result.stdout)
        with open(path) as f:
            self.assertEqual('data', f.read())

    def test_pipeline_environment(self):
        pipeline = Pipeline.of(
            Stage('sh', ('-c', 'printf %s "$ARKHIVE_TEST"'))).with_env(
                ARKHIVE_TEST='from-env')
        self.assertEqual('from-env', self.runner.run(pipeline).stdout)

    def test_spawn_error(self):
        pipeline = Pipeline.of(Stage('printf', ('x',)),
                               Stage('arkhive-no-such-program'))
        with self.assertRaises(ProcessSpawnError) as ctx:
            self.runner.run(pipeline)
        self.assertIn('arkhive-no-such-program', ctx.exception.command)

    def test_empty_pipeline(self):
        with self.assertRaises(ValueError):
            self.runner.run(Pipeline())


if __name__ == '__main__':
    unittest.main()
