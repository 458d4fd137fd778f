import argparse
import logging
import signal
import sys
import time

from svcmon import __version__
from svcmon.nagios.checkresult import CheckResult
from svcmon.nagios.status import Status
from svcmon.nagios.threshold import Range, RangeError, Threshold

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 15
# seconds cleanup() may still take once the global timeout has passed
CLEANUP_GRACE = 1

_LOG_LEVELS = [logging.WARNING, logging.INFO, logging.DEBUG]


def plugin_exit(status, message, result=None, shortname=None):
    """
    Finalizes the check result, prints the plugin line and exits with the
    exit code of `status`. This is the last thing a plugin does.
    """
    if result is None:
        result = CheckResult(shortname)
    elif shortname is not None:
        result.shortname = shortname

    print(result.finalize(status, message))
    sys.stdout.flush()
    sys.exit(status.exit_code)


def range_type(value):
    """argparse type for threshold ranges"""
    try:
        return Range(value)
    except RangeError as e:
        raise argparse.ArgumentTypeError(str(e))


def configure_logging(verbosity):
    level = _LOG_LEVELS[min(verbosity or 0, len(_LOG_LEVELS) - 1)]
    logging.basicConfig(
        stream=sys.stderr,
        level=level,
        format='%(asctime)s %(name)s %(levelname)s: %(message)s')


class PluginArgumentParser(argparse.ArgumentParser):
    """
    Usage errors are UNKNOWN for a monitoring scheduler, argparse would exit
    with 2 which reads as CRITICAL.
    """

    def __init__(self, shortname=None, **kwargs):
        self.shortname = shortname
        super(PluginArgumentParser, self).__init__(**kwargs)

    def error(self, message):
        self.print_usage(sys.stderr)
        plugin_exit(Status.UNKNOWN, message, shortname=self.shortname)


class Plugin(object):
    """
    Base object for a monitoring plugin. Create a class that inherits from
    `Plugin`, give it a `shortname`, implement run() and call start() on an
    instance (do NOT call run() directly, it gets called by start()).

    run() receives the CheckResult of this invocation and reports its
    findings on it. Failures that make further checking pointless are
    raised as PluginError subclasses and end the check at that point with
    the state of the exception.

    class ExampleCheck(Plugin):
        shortname = 'EXAMPLE'
        default_port = 8080

        def run(self, result):
            value = poll(self.args.host, self.args.port)
            status = self.threshold.get_status(value)
            result.add_message(status, 'value is %s' % value)
            result.add_perfdata('value', value, warning=self.args.warning,
                                critical=self.args.critical)

    ExampleCheck().start()
    """

    shortname = None
    version = __version__
    default_port = None
    default_timeout = DEFAULT_TIMEOUT
    host_required = True

    # report elapsed time as the 'time' perfdatum
    measure_time = False

    # check_messages() separators
    message_join = ', '
    message_join_all = None

    def __init__(self, argv=None):
        """
        Since this base object gets inherited, there is no need to take care
        of the common command line arguments. Run ./yourscript -h to see
        what parameters a plugin automatically expects.
        """
        self.arg_parser = PluginArgumentParser(
            shortname=self.shortname,
            description=(self.__doc__ or '').strip() or None,
            add_help=True)

        self.setup_default_args()

        # can be overridden in subclass
        self.add_extra_args()

        self.args = self.arg_parser.parse_args(argv)

        configure_logging(self.args.verbose)

        self.global_timeout = self.args.timeout
        self.threshold = Threshold(self.args.warning, self.args.critical)
        self.start_time = None

    def setup_default_args(self):
        self.arg_parser.add_argument('-H', '--host',
                                     help='host to check',
                                     required=self.host_required)
        self.arg_parser.add_argument('-p', '--port',
                                     help='port to connect to (default: %(default)s)',
                                     type=int,
                                     default=self.default_port)
        self.arg_parser.add_argument('-w', '--warning',
                                     help='warning threshold range',
                                     type=range_type)
        self.arg_parser.add_argument('-c', '--critical',
                                     help='critical threshold range',
                                     type=range_type)
        self.arg_parser.add_argument('-t', '--timeout',
                                     help='seconds before the plugin gives up (default: %(default)s)',
                                     type=int,
                                     default=self.default_timeout)
        self.arg_parser.add_argument('-v', '--verbose',
                                     help='increase verbosity, may be repeated',
                                     action='count',
                                     default=0)
        self.arg_parser.add_argument('-V', '--version',
                                     action='version',
                                     version='%(prog)s ' + self.version)

    def add_extra_args(self):
        """
        To add extra arguments to your plugin, override this method and add
        arguments to self.arg_parser (an argparse ArgumentParser object). The
        argument values will be available in self.args
        """
        pass

    def run(self, result):
        """
        Override this method in your own plugin, then call start() on the
        newly created object (not run() itself!)
        """
        pass

    def cleanup(self):
        """Called after run(), also when it failed or timed out"""
        pass

    def elapsed(self):
        return time.time() - self.start_time

    def time_threshold(self):
        """Threshold reported with the time perfdatum, -w/-c by default"""
        return self.threshold

    def exit(self, status, message, result=None):
        plugin_exit(status, message, result, shortname=self.shortname)

    def start(self):
        """
        Runs the check under the global timeout, then prints the plugin line
        and exits with the matching exit code.
        """
        result = CheckResult(self.shortname)
        self.timed_out = False

        def timeout_handler(signum, frame):
            self.timed_out = True
            raise CheckTimeout(self.global_timeout)

        signal.signal(signal.SIGALRM, timeout_handler)
        signal.alarm(self.global_timeout)
        self.start_time = time.time()

        try:
            try:
                self.run(result)
            finally:
                self._cleanup(result)
        except PluginError as e:
            signal.alarm(0)
            logger.debug('check failed', exc_info=True)
            self._add_time(result)
            self.exit(e.status, str(e), result)
        except Exception as e:
            signal.alarm(0)
            logger.debug('unhandled exception', exc_info=True)
            self.exit(Status.UNKNOWN,
                      'Exception of type %s: %s' % (type(e).__name__, str(e) or 'no message'),
                      result)
        finally:
            signal.alarm(0)

        self._add_time(result)
        status, message = result.check_messages(join=self.message_join,
                                                join_all=self.message_join_all)
        self.exit(status, message, result)

    def _cleanup(self, result):
        # cleanup stays under the deadline
        if self.timed_out:
            signal.alarm(CLEANUP_GRACE)
        try:
            self.cleanup()
        except CheckTimeout:
            if not result.finalized:
                raise
            # the plugin line is printed already, keep its exit code
            logger.warning('cleanup did not finish before the timeout')

    def _add_time(self, result):
        if self.measure_time and self.start_time is not None:
            result.add_elapsed_time(self.elapsed(), self.time_threshold(), self.global_timeout)


class PluginError(Exception):
    status = Status.UNKNOWN

    def __init__(self, message, status=None):
        super(PluginError, self).__init__(message)
        if status is not None:
            self.status = status


class ConnectionFailure(PluginError):
    status = Status.CRITICAL


class DecodeError(PluginError):
    status = Status.CRITICAL


class VerificationFailure(PluginError):
    status = Status.CRITICAL


class CheckTimeout(PluginError):
    status = Status.UNKNOWN

    def __init__(self, timeout):
        super(CheckTimeout, self).__init__('Timeout of %s seconds reached' % timeout)
        self.timeout = timeout
