import logging
import re

from svcmon.nagios.perfdata import PerfDatum, RESERVED_LABELS, UOM_SEC, is_numeric
from svcmon.nagios.status import Status, worst

logger = logging.getLogger(__name__)

_LINE_BREAKS = re.compile(r'\s*[\r\n]+\s*')


def single_line(text):
    """
    Plugin output is one line and `|` starts the performance data, so text
    coming from remote servers or exceptions must not contain either.
    """
    return _LINE_BREAKS.sub(' ', text).replace('|', '/').strip()


class CheckResult(object):
    """
    Accumulates what a check finds out while it runs: messages with their
    state and performance data. A CheckResult gets created once per plugin
    run, handed to the check, and finalized exactly once into the line that
    is printed before the process exits.
    """

    def __init__(self, shortname=None):
        self.shortname = shortname
        self.messages = []
        self.perfdata = []
        # nothing found yet is fine
        self.status = Status.OK
        self.finalized = False
        self.final_status = None
        self.final_message = None

    def _ensure_open(self):
        if self.finalized:
            raise ResultFinalizedError('check result has already been finalized')

    def raise_status(self, status):
        self._ensure_open()
        self.status = worst(self.status, status)

    def add_message(self, status, text):
        self._ensure_open()
        self.messages.append((status, text))
        self.raise_status(status)

    def add_perfdata(self, label, value, uom='', warning=None, critical=None,
                     minimum=None, maximum=None):
        """
        Adds a performance datum. Invalid data is logged and dropped, it
        never fails the check. Returns whether the datum was added.
        """
        self._ensure_open()
        if not isinstance(label, str) or not label.strip():
            logger.warning('ignoring perfdata with empty label (value %r)', value)
            return False
        if label in RESERVED_LABELS:
            logger.warning("ignoring perfdata '%s': label is reserved", label)
            return False
        if not is_numeric(value):
            logger.warning("ignoring perfdata '%s': value %r is not numeric", label, value)
            return False

        self.perfdata.append(PerfDatum(label, value, uom, warning, critical, minimum, maximum))
        return True

    def add_elapsed_time(self, seconds, threshold=None, timeout=None):
        self._ensure_open()
        warning = critical = None
        if threshold is not None:
            warning, critical = threshold.warning, threshold.critical
        self.perfdata.append(PerfDatum('time', round(seconds, 6), UOM_SEC,
                                       warning, critical, 0, timeout))

    def check_messages(self, join=' ', join_all=None):
        """
        Returns (status, text) for the collected messages. Without join_all
        only the messages of the worst state make it into the text, joined
        by `join`. With join_all, the messages of every state are grouped,
        worst state first, and the groups are joined by join_all.
        """
        groups = {}
        for status, text in self.messages:
            if text:
                groups.setdefault(status, []).append(text)

        status = worst(*[s for s, _ in self.messages])

        if join_all is None:
            return status, join.join(groups.get(status, []))

        ordered = sorted(groups, reverse=True)
        return status, join_all.join(join.join(groups[s]) for s in ordered)

    def finalize(self, status, message):
        self._ensure_open()
        self.final_status = status
        self.final_message = message
        self.finalized = True
        return self.output()

    def output(self):
        if not self.finalized:
            status, message = self.status, self.check_messages()[1]
        else:
            status, message = self.final_status, self.final_message

        parts = [self.shortname, str(status), single_line(message or '')]
        line = ' '.join(p for p in parts if p)
        if self.perfdata:
            line += '|' + ' '.join(str(d) for d in self.perfdata)
        return line

    def __str__(self):
        return self.output()


class ResultFinalizedError(Exception):
    pass
