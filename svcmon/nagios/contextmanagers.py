from contextlib import contextmanager
import time

from svcmon.nagios.perfdata import UOM_SEC
from svcmon.nagios.status import Status
from svcmon.nagios.threshold import Threshold


@contextmanager
def benchmark(result, label, warning=None, critical=None):
    """
    Times the enclosed block. Reports the duration as perfdata under `label`
    and raises the state of `result` if it falls into the warning or
    critical range. Nothing is reported when the block raises.
    """
    threshold = Threshold(warning, critical)
    start_time = time.time()
    yield
    elapsed = time.time() - start_time

    status = threshold.get_status(elapsed)
    result.add_perfdata(label, round(elapsed, 6), UOM_SEC,
                        threshold.warning, threshold.critical, 0)

    if status == Status.OK:
        result.add_message(Status.OK, '%s executed in %.3f seconds' % (label, elapsed))
    elif status == Status.CRITICAL:
        result.add_message(status, "'%s' exceeded critical threshold of %s (%.3f seconds)" %
                           (label, threshold.critical, elapsed))
    else:
        result.add_message(status, "'%s' exceeded warning threshold of %s (%.3f seconds)" %
                           (label, threshold.warning, elapsed))
