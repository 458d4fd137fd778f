import contextlib
import io
import time
import unittest

from svcmon.nagios.plugin import (CheckTimeout, ConnectionFailure, DecodeError, Plugin,
                                  PluginError, plugin_exit)
from svcmon.nagios.status import Status
from svcmon.nagios.testing import run_plugin


class ExampleCheck(Plugin):
    shortname = 'EXAMPLE'
    host_required = False

    def __init__(self, argv=None, body=None):
        self.body = body
        self.cleaned_up = False
        super(ExampleCheck, self).__init__(argv or [])

    def run(self, result):
        if self.body is not None:
            self.body(self, result)

    def cleanup(self):
        self.cleaned_up = True


class TestPluginExit(unittest.TestCase):

    def test_plugin_exit_ok(self):
        out = io.StringIO()
        with contextlib.redirect_stdout(out):
            with self.assertRaises(SystemExit) as cm:
                plugin_exit(Status.OK, 'done', shortname='EXAMPLE')

        self.assertEqual(cm.exception.code, 0)
        self.assertEqual(out.getvalue(), 'EXAMPLE OK done\n')

    def test_plugin_exit_critical(self):
        out = io.StringIO()
        with contextlib.redirect_stdout(out):
            with self.assertRaises(SystemExit) as cm:
                plugin_exit(Status.CRITICAL, 'down', shortname='EXAMPLE')

        self.assertEqual(cm.exception.code, 2)
        self.assertTrue(out.getvalue().startswith('EXAMPLE CRITICAL down'))


class TestPlugin(unittest.TestCase):

    def test_messages_are_aggregated(self):
        def body(plugin, result):
            result.add_message(Status.OK, 'a')
            result.add_message(Status.WARNING, 'b')
            result.add_message(Status.CRITICAL, 'c')
            result.add_perfdata('value', 42, warning=plugin.args.warning)

        code, output = run_plugin(ExampleCheck(['-w', '10'], body))
        self.assertEqual(code, 2)
        self.assertEqual(output, 'EXAMPLE CRITICAL c|value=42;10;;;')

    def test_empty_check_is_ok(self):
        check = ExampleCheck()
        code, output = run_plugin(check)
        self.assertEqual(code, 0)
        self.assertEqual(output, 'EXAMPLE OK')
        self.assertTrue(check.cleaned_up)

    def test_timeout_exits_unknown(self):
        def body(plugin, result):
            time.sleep(5)

        check = ExampleCheck(['-t', '1'], body)
        code, output = run_plugin(check)
        self.assertEqual(code, 3)
        self.assertEqual(output, 'EXAMPLE UNKNOWN Timeout of 1 seconds reached')
        self.assertTrue(check.cleaned_up)

    def test_slow_cleanup_is_bounded_by_timeout(self):
        class SlowCleanupCheck(ExampleCheck):
            def cleanup(self):
                time.sleep(3)

        started = time.time()
        code, output = run_plugin(SlowCleanupCheck(['-t', '1']))
        self.assertLess(time.time() - started, 2)
        self.assertEqual(code, 3)
        self.assertEqual(output, 'EXAMPLE UNKNOWN Timeout of 1 seconds reached')

    def test_slow_cleanup_after_timeout_gets_grace_period(self):
        class SlowCleanupCheck(ExampleCheck):
            def cleanup(self):
                time.sleep(5)

        def body(plugin, result):
            time.sleep(5)

        started = time.time()
        code, output = run_plugin(SlowCleanupCheck(['-t', '1'], body))
        self.assertLess(time.time() - started, 3)
        self.assertEqual(code, 3)
        self.assertEqual(output, 'EXAMPLE UNKNOWN Timeout of 1 seconds reached')

    def test_slow_cleanup_after_exit_keeps_plugin_line(self):
        class SlowCleanupCheck(ExampleCheck):
            def cleanup(self):
                time.sleep(3)

        def body(plugin, result):
            plugin.exit(Status.WARNING, 'early')

        with self.assertLogs('svcmon.nagios.plugin', level='WARNING'):
            code, output = run_plugin(SlowCleanupCheck(['-t', '1'], body))
        self.assertEqual(code, 1)
        self.assertEqual(output, 'EXAMPLE WARNING early')

    def test_plugin_errors_map_to_status(self):
        cases = [
            (ConnectionFailure('refused'), 2),
            (DecodeError('garbage'), 2),
            (PluginError('odd'), 3),
            (PluginError('rejected', Status.WARNING), 1),
            (CheckTimeout(7), 3),
        ]
        for error, expected in cases:
            def body(plugin, result, error=error):
                raise error

            code, output = run_plugin(ExampleCheck([], body))
            self.assertEqual(code, expected, output)
            self.assertIn(str(error), output)

    def test_unhandled_exception_is_unknown(self):
        def body(plugin, result):
            raise KeyError('missing')

        code, output = run_plugin(ExampleCheck([], body))
        self.assertEqual(code, 3)
        self.assertTrue(output.startswith('EXAMPLE UNKNOWN Exception of type KeyError'))

    def test_explicit_time_perfdata_does_not_abort(self):
        def body(plugin, result):
            result.add_perfdata('time', 3)
            result.add_message(Status.OK, 'fine')

        code, output = run_plugin(ExampleCheck([], body))
        self.assertEqual(code, 0)
        self.assertEqual(output, 'EXAMPLE OK fine')

    def test_measure_time(self):
        class TimedCheck(ExampleCheck):
            measure_time = True

        code, output = run_plugin(TimedCheck(['-w', '5', '-t', '9']))
        self.assertEqual(code, 0)
        self.assertRegex(output, r'^EXAMPLE OK\|time=[0-9.]+s;5;;0;9$')

    def test_exit_from_run(self):
        def body(plugin, result):
            plugin.exit(Status.WARNING, 'early')

        check = ExampleCheck([], body)
        code, output = run_plugin(check)
        self.assertEqual(code, 1)
        self.assertEqual(output, 'EXAMPLE WARNING early')
        self.assertTrue(check.cleaned_up)

    def test_bad_range_is_usage_error(self):
        out = io.StringIO()
        with contextlib.redirect_stdout(out), contextlib.redirect_stderr(io.StringIO()):
            with self.assertRaises(SystemExit) as cm:
                ExampleCheck(['-c', '20:10'])

        self.assertEqual(cm.exception.code, 3)
        self.assertTrue(out.getvalue().startswith('EXAMPLE UNKNOWN'))

    def test_missing_host_is_usage_error(self):
        class HostCheck(Plugin):
            shortname = 'HOST'

        out = io.StringIO()
        with contextlib.redirect_stdout(out), contextlib.redirect_stderr(io.StringIO()):
            with self.assertRaises(SystemExit) as cm:
                HostCheck([])

        self.assertEqual(cm.exception.code, 3)
