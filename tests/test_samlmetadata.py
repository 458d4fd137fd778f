import datetime
import unittest
from unittest import mock

import requests

from svcmon.checks.samlmetadata import (SamlMetadataCheck, count_entities, days_valid, is_signed,
                                        parse_datetime, parse_metadata)
from svcmon.nagios.plugin import DecodeError
from svcmon.nagios.testing import run_plugin

METADATA = b"""<?xml version="1.0" encoding="UTF-8"?>
<md:EntitiesDescriptor xmlns:md="urn:oasis:names:tc:SAML:2.0:metadata"
                       xmlns:ds="http://www.w3.org/2000/09/xmldsig#"
                       Name="urn:example:federation" validUntil="%s">
  <ds:Signature><ds:SignedInfo/></ds:Signature>
  <md:EntityDescriptor entityID="https://idp.example.org/idp">
    <md:IDPSSODescriptor protocolSupportEnumeration="urn:oasis:names:tc:SAML:2.0:protocol"/>
  </md:EntityDescriptor>
  <md:EntitiesDescriptor Name="nested">
    <md:EntityDescriptor entityID="https://sp.example.org/sp">
      <md:SPSSODescriptor protocolSupportEnumeration="urn:oasis:names:tc:SAML:2.0:protocol"/>
    </md:EntityDescriptor>
  </md:EntitiesDescriptor>
</md:EntitiesDescriptor>
"""

UNSIGNED = b"""<EntityDescriptor xmlns="urn:oasis:names:tc:SAML:2.0:metadata"
  entityID="https://sp.example.org/sp"/>
"""

NOW = datetime.datetime(2026, 10, 1, tzinfo=datetime.timezone.utc)


def metadata_valid_for(days):
    valid_until = datetime.datetime.now(datetime.timezone.utc) + datetime.timedelta(days=days)
    return METADATA % valid_until.strftime('%Y-%m-%dT%H:%M:%SZ').encode('ascii')


class TestMetadataParsing(unittest.TestCase):

    def test_parse(self):
        root = parse_metadata(METADATA % b'2026-10-11T00:00:00Z')
        self.assertEqual(count_entities(root), 2)
        self.assertTrue(is_signed(root))
        self.assertAlmostEqual(days_valid(root, now=NOW), 10.0)

    def test_single_entity(self):
        root = parse_metadata(UNSIGNED)
        self.assertEqual(count_entities(root), 1)
        self.assertFalse(is_signed(root))
        self.assertIsNone(days_valid(root))

    def test_not_xml(self):
        with self.assertRaises(DecodeError):
            parse_metadata(b'<html><body>Maintenance</body>')

    def test_not_metadata(self):
        with self.assertRaises(DecodeError):
            parse_metadata(b'<html><body>Maintenance</body></html>')

    def test_parse_datetime(self):
        self.assertEqual(parse_datetime('2026-10-11T00:00:00Z'),
                         datetime.datetime(2026, 10, 11, tzinfo=datetime.timezone.utc))
        self.assertEqual(parse_datetime('2026-10-11T02:00:00+02:00'),
                         datetime.datetime(2026, 10, 11, tzinfo=datetime.timezone.utc))
        self.assertEqual(parse_datetime('2026-10-11T00:00:00'),
                         datetime.datetime(2026, 10, 11, tzinfo=datetime.timezone.utc))
        with self.assertRaises(DecodeError):
            parse_datetime('next tuesday')
        with self.assertRaises(DecodeError):
            parse_datetime('2026-13-11T00:00:00Z')

    def test_parse_datetime_fractional_seconds(self):
        utc = datetime.timezone.utc
        self.assertEqual(parse_datetime('2026-10-11T00:00:00.5Z'),
                         datetime.datetime(2026, 10, 11, 0, 0, 0, 500000, tzinfo=utc))
        self.assertEqual(parse_datetime('2026-10-11T00:00:00.12Z'),
                         datetime.datetime(2026, 10, 11, 0, 0, 0, 120000, tzinfo=utc))
        self.assertEqual(parse_datetime('2026-10-11T00:00:00.1234567Z'),
                         datetime.datetime(2026, 10, 11, 0, 0, 0, 123456, tzinfo=utc))


class TestSamlMetadataCheck(unittest.TestCase):

    def run_check(self, content=None, status_code=200, side_effect=None, argv=()):
        response = mock.Mock(status_code=status_code, content=content)
        with mock.patch('svcmon.checks.samlmetadata.requests.get', return_value=response,
                        side_effect=side_effect):
            return run_plugin(SamlMetadataCheck(['-u', 'https://md.example.org/md.xml'] + list(argv)))

    def test_ok(self):
        code, output = self.run_check(metadata_valid_for(20))
        self.assertEqual(code, 0, output)
        self.assertTrue(output.startswith('SAML_METADATA OK valid for'))
        self.assertIn('2 entities', output)
        self.assertIn('entities=2;;;0;', output)
        self.assertIn('days_valid=', output)

    def test_expiring(self):
        code, output = self.run_check(metadata_valid_for(5))
        self.assertEqual(code, 1, output)
        code, output = self.run_check(metadata_valid_for(1))
        self.assertEqual(code, 2, output)
        code, output = self.run_check(metadata_valid_for(1), argv=['-w', '0:', '-c', '@-1000:0'])
        self.assertEqual(code, 0, output)

    def test_too_few_entities(self):
        code, output = self.run_check(metadata_valid_for(20), argv=['--entities', '10:'])
        self.assertEqual(code, 2)
        self.assertEqual(output.split('|')[0], 'SAML_METADATA CRITICAL 2 entities')

    def test_missing_valid_until_and_signature(self):
        code, output = self.run_check(UNSIGNED, argv=['--signed'])
        self.assertEqual(code, 2)
        self.assertIn('metadata has no validUntil, metadata is not signed', output)

        code, output = self.run_check(UNSIGNED, argv=['--no-valid-until'])
        self.assertEqual(code, 0)

    def test_http_error(self):
        code, output = self.run_check(b'not found', status_code=404)
        self.assertEqual(code, 2)
        self.assertIn('returned HTTP 404', output)

    def test_connection_error(self):
        code, output = self.run_check(side_effect=requests.exceptions.ConnectionError('refused'))
        self.assertEqual(code, 2)
        self.assertIn('Could not fetch', output)
