"""
Checks SAML metadata published over HTTP(S): that it can be fetched and
parsed, how long it stays valid, whether it is signed and how many
entities it describes.
"""
import datetime
import logging
import re
from xml.etree import ElementTree

import requests

from svcmon.nagios.perfdata import UOM_BYTE
from svcmon.nagios.plugin import ConnectionFailure, DecodeError, Plugin, range_type
from svcmon.nagios.status import Status
from svcmon.nagios.threshold import Range, check_threshold

logger = logging.getLogger(__name__)

MD_NS = 'urn:oasis:names:tc:SAML:2.0:metadata'
DS_NS = 'http://www.w3.org/2000/09/xmldsig#'

ENTITIES_DESCRIPTOR = '{%s}EntitiesDescriptor' % MD_NS
ENTITY_DESCRIPTOR = '{%s}EntityDescriptor' % MD_NS
SIGNATURE = '{%s}Signature' % DS_NS

DEFAULT_WARNING = '7:'
DEFAULT_CRITICAL = '2:'

_XS_DATETIME = re.compile(
    r'^(\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})(?:\.(\d+))?(Z|[+-]\d{2}:\d{2})?$')


def parse_metadata(content):
    try:
        root = ElementTree.fromstring(content)
    except ElementTree.ParseError as e:
        raise DecodeError('Metadata is not well-formed XML: %s' % e)
    if root.tag not in (ENTITIES_DESCRIPTOR, ENTITY_DESCRIPTOR):
        raise DecodeError('Unexpected document element %s' % root.tag)
    return root


def parse_datetime(value):
    """xs:dateTime as used in validUntil, timezone-less values are UTC"""
    match = _XS_DATETIME.match(value.strip())
    if match is None:
        raise DecodeError("Invalid validUntil '%s'" % value)
    base, fraction, zone = match.groups()
    # fromisoformat before Python 3.11 only takes 3 or 6 fraction digits
    text = base + '.' + (fraction or '').ljust(6, '0')[:6]
    if zone == 'Z':
        text += '+00:00'
    elif zone:
        text += zone
    try:
        parsed = datetime.datetime.fromisoformat(text)
    except ValueError:
        raise DecodeError("Invalid validUntil '%s'" % value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=datetime.timezone.utc)
    return parsed


def days_valid(root, now=None):
    """Days until validUntil of the document element, None without one"""
    valid_until = root.get('validUntil')
    if valid_until is None:
        return None
    now = now or datetime.datetime.now(datetime.timezone.utc)
    return (parse_datetime(valid_until) - now).total_seconds() / 86400.0


def count_entities(root):
    if root.tag == ENTITY_DESCRIPTOR:
        return 1
    return sum(1 for _ in root.iter(ENTITY_DESCRIPTOR))


def is_signed(root):
    return root.find(SIGNATURE) is not None


class SamlMetadataCheck(Plugin):
    """Check a SAML metadata feed"""

    shortname = 'SAML_METADATA'
    host_required = False
    measure_time = True

    def add_extra_args(self):
        self.arg_parser.add_argument('-u', '--url', required=True,
                                     help='URL the metadata is published at')
        self.arg_parser.add_argument('--entities', type=range_type,
                                     help='critical range for the number of entities')
        self.arg_parser.add_argument('--signed', action='store_true',
                                     help='metadata must carry a signature')
        self.arg_parser.add_argument('--no-valid-until', action='store_true',
                                     help='do not require a validUntil attribute')
        self.arg_parser.add_argument('--insecure', action='store_true',
                                     help='do not verify the server certificate')

    def time_threshold(self):
        # -w/-c are about validity here
        return None

    def fetch(self):
        logger.info('fetching %s', self.args.url)
        try:
            response = requests.get(self.args.url, timeout=self.global_timeout,
                                    verify=not self.args.insecure)
        except requests.exceptions.RequestException as e:
            raise ConnectionFailure('Could not fetch %s: %s' % (self.args.url, e))
        if response.status_code != 200:
            raise ConnectionFailure('%s returned HTTP %d' % (self.args.url, response.status_code))
        return response.content

    def run(self, result):
        warning = self.args.warning or Range(DEFAULT_WARNING)
        critical = self.args.critical or Range(DEFAULT_CRITICAL)

        content = self.fetch()
        root = parse_metadata(content)
        result.add_perfdata('size', len(content), UOM_BYTE, minimum=0)

        days = days_valid(root)
        if days is None:
            if not self.args.no_valid_until:
                result.add_message(Status.CRITICAL, 'metadata has no validUntil')
        else:
            result.add_message(check_threshold(days, warning, critical),
                               'valid for %.1f days' % days)
            result.add_perfdata('days_valid', round(days, 2), '', warning, critical)

        entities = count_entities(root)
        result.add_message(check_threshold(entities, critical=self.args.entities),
                           '%d entities' % entities)
        result.add_perfdata('entities', entities, '', None, self.args.entities, 0)

        if is_signed(root):
            result.add_message(Status.OK, 'signed')
        elif self.args.signed:
            result.add_message(Status.CRITICAL, 'metadata is not signed')


def main():
    SamlMetadataCheck().start()


if __name__ == '__main__':
    main()
