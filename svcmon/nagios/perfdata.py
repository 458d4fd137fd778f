import re

UOM_SEC = 's'
UOM_BYTE = 'B'
UOM_AMPERE = 'A'
UOM_NONE = ''

RESERVED_LABELS = frozenset(['time'])

_NEEDS_QUOTING = re.compile(r"[\s='|]")


def format_number(value):
    """
    Renders a number the way perfdata parsers accept it: plain decimal
    notation, no exponent, no trailing zeros.
    """
    if value is None:
        return ''
    if isinstance(value, bool):
        value = int(value)
    if isinstance(value, int):
        return str(value)
    if isinstance(value, str):
        value = float(value)
    if value.is_integer():
        return str(int(value))
    text = '%.6f' % value
    return text.rstrip('0').rstrip('.')


def is_numeric(value):
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return True
    try:
        float(value)
    except (TypeError, ValueError):
        return False
    return True


def quote_label(label):
    if _NEEDS_QUOTING.search(label):
        return "'%s'" % label.replace("'", "''")
    return label


class PerfDatum(object):

    def __init__(self, label, value, uom=UOM_NONE, warning=None, critical=None,
                 minimum=None, maximum=None):
        self.label = label
        self.value = value
        self.uom = uom or UOM_NONE
        self.warning = warning
        self.critical = critical
        self.minimum = minimum
        self.maximum = maximum

    def __str__(self):
        fields = [
            '%s=%s%s' % (quote_label(self.label), format_number(self.value), self.uom),
            '' if self.warning is None else str(self.warning),
            '' if self.critical is None else str(self.critical),
            format_number(self.minimum),
            format_number(self.maximum),
        ]
        return ';'.join(fields)

    def __repr__(self):
        return '<PerfDatum %s>' % self
