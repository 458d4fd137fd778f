from svcmon.nagios.status import Status


class RangeError(ValueError):
    pass


def _parse_number(text, spec):
    try:
        value = float(text)
    except ValueError:
        raise RangeError("'%s' is not a valid range" % spec)
    if value.is_integer() and '.' not in text and 'e' not in text.lower():
        return int(value)
    return value


class Range(object):
    """
    A monitoring-plugins threshold range, see
    https://www.monitoring-plugins.org/doc/guidelines.html#THRESHOLDFORMAT

    10      alert if value < 0 or value > 10
    10:     alert if value < 10
    ~:10    alert if value > 10 (':10' is accepted as well)
    10:20   alert if value < 10 or value > 20
    @10:20  alert if 10 <= value <= 20

    start or end being None stands for negative or positive infinity.
    """

    def __init__(self, spec):
        self.spec = spec
        text = spec.strip()

        self.inside = text.startswith('@')
        if self.inside:
            text = text[1:]

        if not text:
            raise RangeError("'%s' is not a valid range" % spec)

        if ':' in text:
            start, end = text.split(':', 1)
            self.start = None if start in ('', '~') else _parse_number(start, spec)
            self.end = None if end == '' else _parse_number(end, spec)
        else:
            self.start = 0
            self.end = _parse_number(text, spec)

        if self.start is not None and self.end is not None and self.start > self.end:
            raise RangeError("'%s' is not a valid range: start is greater than end" % spec)

    def check(self, value):
        """Returns True if value is an alert condition for this range"""
        value = float(value)
        outside = ((self.start is not None and value < self.start) or
                   (self.end is not None and value > self.end))
        if self.inside:
            return not outside
        return outside

    def __str__(self):
        start = '~' if self.start is None else str(self.start)
        end = '' if self.end is None else str(self.end)
        prefix = '@' if self.inside else ''
        if start == '0' and end and not self.inside:
            return end
        return '%s%s:%s' % (prefix, start, end)

    def __repr__(self):
        return 'Range(%r)' % str(self)

    def __eq__(self, other):
        if not isinstance(other, Range):
            return NotImplemented
        return (self.start, self.end, self.inside) == (other.start, other.end, other.inside)

    def __hash__(self):
        return hash((self.start, self.end, self.inside))


def to_range(spec):
    """Accepts None, a Range, a number or a range string"""
    if spec is None or isinstance(spec, Range):
        return spec
    if isinstance(spec, (int, float)):
        spec = str(spec)
    if not spec.strip():
        return None
    return Range(spec)


class Threshold(object):

    def __init__(self, warning=None, critical=None):
        self.warning = to_range(warning)
        self.critical = to_range(critical)

    def get_status(self, value):
        # critical wins over warning
        if self.critical is not None and self.critical.check(value):
            return Status.CRITICAL
        if self.warning is not None and self.warning.check(value):
            return Status.WARNING
        return Status.OK

    def __repr__(self):
        return 'Threshold(warning=%r, critical=%r)' % (self.warning, self.critical)


def check_threshold(value, warning=None, critical=None):
    return Threshold(warning, critical).get_status(value)
