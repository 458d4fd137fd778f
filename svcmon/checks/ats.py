"""
Checks an APC automatic transfer switch through the PowerNet MIB.
"""
import logging

from svcmon.checks.snmpclient import SnmpClient
from svcmon.nagios.perfdata import UOM_AMPERE
from svcmon.nagios.plugin import ConnectionFailure, DecodeError, Plugin
from svcmon.nagios.status import Status

logger = logging.getLogger(__name__)

ATS = '1.3.6.1.4.1.318.1.1.8'

OID_PREFERRED_SOURCE = ATS + '.4.2.0'
OID_SELECTED_SOURCE = ATS + '.5.1.2.0'
# atsOutputPhaseTable, current in tenths of amps
OID_OUTPUT_CURRENT = ATS + '.5.4.3.1.4'

SOURCES = {1: 'A', 2: 'B', 3: 'none'}

_FAIL_OK = {1: ('failed', Status.CRITICAL), 2: ('ok', Status.OK)}

# sensor name -> (oid, {value: (text, status)})
SENSORS = {
    'redundancy': (ATS + '.5.1.3.0', {1: ('redundancy lost', Status.CRITICAL),
                                      2: ('fully redundant', Status.OK)}),
    'overcurrent': (ATS + '.5.1.4.0', {1: ('over current', Status.CRITICAL),
                                       2: ('current ok', Status.OK)}),
    '5v_supply': (ATS + '.5.1.5.0', _FAIL_OK),
    '24v_supply': (ATS + '.5.1.6.0', _FAIL_OK),
    '24v_source_b_supply': (ATS + '.5.1.7.0', _FAIL_OK),
    'switch': (ATS + '.5.1.10.0', _FAIL_OK),
    'source_a': (ATS + '.5.1.12.0', _FAIL_OK),
    'source_b': (ATS + '.5.1.13.0', _FAIL_OK),
    'phase_sync': (ATS + '.5.1.14.0', {1: ('in sync', Status.OK),
                                       2: ('out of sync', Status.WARNING)}),
    'voltage_out': (ATS + '.5.1.15.0', _FAIL_OK),
    'hardware': (ATS + '.5.1.16.0', _FAIL_OK),
}


def decode_sensor(name, raw):
    oid, states = SENSORS[name]
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise DecodeError('Invalid value %r for sensor %s' % (raw, name))
    try:
        text, status = states[value]
    except KeyError:
        return Status.UNKNOWN, '%s: unknown state %d' % (name, value)
    return status, '%s: %s' % (name, text)


def evaluate_sensors(values, ignore=frozenset()):
    """
    `values` maps OIDs to raw SNMP values. Returns a list of (status, text)
    for every sensor the device answered for, except the ignored ones.
    """
    findings = []
    for name in sorted(SENSORS):
        if name in ignore:
            logger.debug('ignoring sensor %s', name)
            continue
        oid = SENSORS[name][0]
        if oid not in values:
            logger.info('sensor %s not supported by device', name)
            continue
        findings.append(decode_sensor(name, values[oid]))
    return findings


def evaluate_source(values):
    selected = SOURCES.get(int(values.get(OID_SELECTED_SOURCE, 3)), 'none')
    preferred = SOURCES.get(int(values.get(OID_PREFERRED_SOURCE, 3)), 'none')
    text = 'on source %s' % selected
    if preferred != 'none' and selected != preferred:
        return Status.WARNING, '%s, preferred source is %s' % (text, preferred)
    return Status.OK, text


def decode_currents(rows):
    """Returns [(phase index, amps)] from an atsOutputCurrent walk"""
    currents = []
    for oid, raw in sorted(rows.items()):
        index = oid.rsplit('.', 1)[-1]
        try:
            currents.append((index, int(raw) / 10.0))
        except (TypeError, ValueError):
            raise DecodeError('Invalid output current %r at %s' % (raw, oid))
    return currents


class AtsCheck(Plugin):
    """Check the state and output current of an APC transfer switch"""

    shortname = 'ATS'

    def add_extra_args(self):
        self.arg_parser.add_argument('-C', '--community', default='public',
                                     help='SNMP community (default: %(default)s)')
        self.arg_parser.add_argument('-i', '--ignore', action='append', default=[],
                                     choices=sorted(SENSORS),
                                     help='sensor to leave out, may be repeated')

    def run(self, result):
        client = SnmpClient(self.args.host, self.args.community, self.args.port)
        oids = [OID_SELECTED_SOURCE, OID_PREFERRED_SOURCE] + [s[0] for s in SENSORS.values()]
        values = client.get(oids)
        if not values:
            raise ConnectionFailure('%s does not answer for the PowerNet ATS MIB' % self.args.host)

        result.add_message(*evaluate_source(values))
        for status, text in evaluate_sensors(values, set(self.args.ignore)):
            result.add_message(status, text)

        for index, amps in decode_currents(client.walk(OID_OUTPUT_CURRENT)):
            result.add_message(self.threshold.get_status(amps),
                               'output current %s: %.1f A' % (index, amps))
            result.add_perfdata('current_%s' % index, amps, UOM_AMPERE,
                                self.args.warning, self.args.critical, 0)


def main():
    AtsCheck().start()


if __name__ == '__main__':
    main()
