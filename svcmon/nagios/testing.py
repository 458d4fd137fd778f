import contextlib
import io


def run_plugin(plugin):
    """
    Calls plugin.start() and returns (exit code, printed plugin line)
    instead of exiting.
    """
    out = io.StringIO()
    with contextlib.redirect_stdout(out):
        try:
            plugin.start()
        except SystemExit as e:
            return e.code, out.getvalue().strip()
    raise AssertionError('plugin did not exit')
