"""
Counts processes in the HOST-RESOURCES-MIB process table of a host.
"""
import logging
import re

from svcmon.checks.snmpclient import SnmpClient
from svcmon.nagios.plugin import DecodeError, Plugin
from svcmon.nagios.threshold import Range

logger = logging.getLogger(__name__)

HR_SW_RUN_NAME = '1.3.6.1.2.1.25.4.2.1.2'
HR_SW_RUN_STATUS = '1.3.6.1.2.1.25.4.2.1.7'

RUN_STATES = {
    1: 'running',
    2: 'runnable',
    3: 'notRunnable',
    4: 'invalid',
}

DEFAULT_CRITICAL = '1:'


def decode_process_table(table):
    """
    `table` is {index: {'name': ..., 'status': ...}} as walked. Returns a
    list of (pid, name, state) sorted by pid. Rows missing a column belong
    to processes that started or exited between the column walks and are
    left out.
    """
    processes = []
    for index, row in table.items():
        if 'name' not in row or 'status' not in row:
            logger.debug('skipping incomplete process table row %s: %r', index, row)
            continue
        try:
            pid = int(index)
            state = RUN_STATES.get(int(row['status']), 'invalid')
        except (TypeError, ValueError):
            raise DecodeError('Malformed process table row %s: %r' % (index, row))
        processes.append((pid, str(row['name']), state))
    return sorted(processes)


def select_processes(processes, name=None, regex=None, ignore_states=frozenset()):
    pattern = re.compile(regex) if regex else None
    selected = []
    for pid, proc_name, state in processes:
        if state in ignore_states:
            continue
        if name is not None and proc_name != name:
            continue
        if pattern is not None and not pattern.search(proc_name):
            continue
        selected.append((pid, proc_name, state))
    return selected


def describe(name=None, regex=None):
    if name:
        return "with name '%s'" % name
    if regex:
        return "matching '%s'" % regex
    return 'in total'


class SnmpProcsCheck(Plugin):
    """Count processes on a host through SNMP"""

    shortname = 'PROCS'

    def add_extra_args(self):
        self.arg_parser.add_argument('-C', '--community', default='public',
                                     help='SNMP community (default: %(default)s)')
        self.arg_parser.add_argument('-n', '--name',
                                     help='exact process name to count')
        self.arg_parser.add_argument('-r', '--regex',
                                     help='regular expression process names must match')
        self.arg_parser.add_argument('--ignore-state', action='append', default=[],
                                     choices=sorted(RUN_STATES.values()),
                                     help='process state to leave out, may be repeated')

    def run(self, result):
        if self.threshold.warning is None and self.threshold.critical is None:
            self.threshold.critical = Range(DEFAULT_CRITICAL)

        client = SnmpClient(self.args.host, self.args.community, self.args.port)
        table = client.walk_columns({'name': HR_SW_RUN_NAME, 'status': HR_SW_RUN_STATUS})
        processes = decode_process_table(table)
        logger.info('%d processes in table', len(processes))

        selected = select_processes(processes, self.args.name, self.args.regex,
                                    set(self.args.ignore_state))
        count = len(selected)
        status = self.threshold.get_status(count)

        result.add_message(status, '%d process%s %s' % (
            count, '' if count == 1 else 'es', describe(self.args.name, self.args.regex)))
        result.add_perfdata('procs', count, '', self.threshold.warning,
                            self.threshold.critical, 0)


def main():
    SnmpProcsCheck().start()


if __name__ == '__main__':
    main()
