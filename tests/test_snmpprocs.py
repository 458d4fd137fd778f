import unittest
from unittest import mock

from svcmon.checks.snmpprocs import SnmpProcsCheck, decode_process_table, select_processes
from svcmon.nagios.plugin import DecodeError
from svcmon.nagios.testing import run_plugin

TABLE = {
    '1': {'name': 'systemd', 'status': 2},
    '812': {'name': 'sshd', 'status': 2},
    '90': {'name': 'radiusd', 'status': 1},
    '91': {'name': 'radiusd', 'status': 4},
    '1200': {'name': 'sshd', 'status': 2},
}


class TestProcessTable(unittest.TestCase):

    def test_decode(self):
        processes = decode_process_table(TABLE)
        self.assertEqual(processes[0], (1, 'systemd', 'runnable'))
        self.assertEqual([p[0] for p in processes], [1, 90, 91, 812, 1200])
        self.assertEqual(processes[2], (91, 'radiusd', 'invalid'))

    def test_decode_skips_incomplete_row(self):
        table = {'1': {'name': 'init', 'status': 1}, '7': {'name': 'short-lived'},
                 '8': {'status': 2}}
        self.assertEqual(decode_process_table(table), [(1, 'init', 'running')])

    def test_decode_malformed_row(self):
        with self.assertRaises(DecodeError):
            decode_process_table({'x': {'name': 'bad', 'status': 1}})
        with self.assertRaises(DecodeError):
            decode_process_table({'5': {'name': 'bad', 'status': 'running'}})

    def test_select(self):
        processes = decode_process_table(TABLE)
        self.assertEqual(len(select_processes(processes)), 5)
        self.assertEqual(len(select_processes(processes, name='sshd')), 2)
        self.assertEqual(len(select_processes(processes, name='ssh')), 0)
        self.assertEqual(len(select_processes(processes, regex='^rad')), 2)
        self.assertEqual(select_processes(processes, regex='^rad', ignore_states={'invalid'}),
                         [(90, 'radiusd', 'running')])


class TestSnmpProcsCheck(unittest.TestCase):

    def run_check(self, *argv):
        with mock.patch('svcmon.checks.snmpprocs.SnmpClient') as client_class:
            client_class.return_value.walk_columns.return_value = TABLE
            return run_plugin(SnmpProcsCheck(['-H', 'server1'] + list(argv)))

    def test_count(self):
        code, output = self.run_check('-n', 'sshd', '-c', '1:2')
        self.assertEqual(code, 0)
        self.assertEqual(output, "PROCS OK 2 processes with name 'sshd'|procs=2;;1:2;0;")

    def test_default_requires_one_process(self):
        code, output = self.run_check('-n', 'named')
        self.assertEqual(code, 2)
        self.assertEqual(output, "PROCS CRITICAL 0 processes with name 'named'|procs=0;;1:;0;")

    def test_warning(self):
        code, output = self.run_check('-r', 'radius', '--ignore-state', 'invalid', '-w', '2:', '-c', '1:')
        self.assertEqual(code, 1)
        self.assertTrue(output.startswith("PROCS WARNING 1 process matching 'radius'"))

    def test_process_exiting_between_walks(self):
        table = dict(TABLE)
        table['1300'] = {'name': 'sshd'}
        with mock.patch('svcmon.checks.snmpprocs.SnmpClient') as client_class:
            client_class.return_value.walk_columns.return_value = table
            code, output = run_plugin(SnmpProcsCheck(['-H', 'server1', '-n', 'sshd']))
        self.assertEqual(code, 0)
        self.assertTrue(output.startswith("PROCS OK 2 processes with name 'sshd'"))
