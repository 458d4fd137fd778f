import enum
import functools


@functools.total_ordering
class Status(enum.Enum):
    """
    Plugin states. The value of each member is the process exit code a
    monitoring scheduler expects, the ordering is by severity:

        OK < UNKNOWN < WARNING < CRITICAL

    so that max() over a number of findings gives the state to report.
    Do not compare exit codes numerically, UNKNOWN (3) is not worse than
    CRITICAL (2).
    """
    OK = 0
    WARNING = 1
    CRITICAL = 2
    UNKNOWN = 3

    @property
    def exit_code(self):
        return self.value

    @property
    def severity(self):
        return _SEVERITY[self]

    def __lt__(self, other):
        if not isinstance(other, Status):
            return NotImplemented
        return self.severity < other.severity

    def __str__(self):
        return self.name

    @classmethod
    def from_exit_code(cls, code):
        return cls(int(code))


_SEVERITY = {
    Status.OK: 0,
    Status.UNKNOWN: 1,
    Status.WARNING: 2,
    Status.CRITICAL: 3,
}


def worst(*statuses):
    """Worst of the given states, OK when called without any."""
    return max(statuses, default=Status.OK)
