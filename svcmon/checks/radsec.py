"""
Checks a RadSec (RADIUS over TLS, RFC 6614) server by sending a RADIUS
Status-Server request (RFC 5997). The server is either given directly or
located through NAPTR and SRV records of a realm (RFC 7585).
"""
import collections
import datetime
import hashlib
import hmac
import logging
import os
import socket
import ssl
import struct

import dns.exception
import dns.resolver

from svcmon.nagios.plugin import ConnectionFailure, DecodeError, Plugin, PluginError
from svcmon.nagios.status import Status

logger = logging.getLogger(__name__)

RADSEC_PORT = 2083
RADSEC_SECRET = b'radsec'
NAPTR_SERVICE = 'x-eduroam:radius.tls'

ACCESS_REQUEST = 1
ACCESS_ACCEPT = 2
ACCESS_REJECT = 3
ACCOUNTING_RESPONSE = 5
ACCESS_CHALLENGE = 11
STATUS_SERVER = 12

CODE_NAMES = {
    ACCESS_REQUEST: 'Access-Request',
    ACCESS_ACCEPT: 'Access-Accept',
    ACCESS_REJECT: 'Access-Reject',
    ACCOUNTING_RESPONSE: 'Accounting-Response',
    ACCESS_CHALLENGE: 'Access-Challenge',
    STATUS_SERVER: 'Status-Server',
}

ATTR_REPLY_MESSAGE = 18
ATTR_NAS_IDENTIFIER = 32
ATTR_MESSAGE_AUTHENTICATOR = 80

# RADIUS packet header, 20 bytes, big-endian
#   0 code           u8
#   1 identifier     u8
#   2 length         u16, whole packet including the header
#   4 authenticator  16 bytes
HEADER = struct.Struct('>BBH16s')

# attribute: type u8, length u8 (including these two bytes), value
ATTRIBUTE_HEADER = struct.Struct('>BB')

MAX_PACKET_SIZE = 4096

Packet = collections.namedtuple('Packet', ['code', 'identifier', 'authenticator', 'attributes', 'raw'])
Target = collections.namedtuple('Target', ['host', 'port'])


class DiscoveryError(PluginError):
    status = Status.CRITICAL


def encode_attributes(attributes):
    return b''.join(ATTRIBUTE_HEADER.pack(t, len(v) + 2) + v for t, v in attributes)


def decode_attributes(data):
    attributes = []
    offset = 0
    while offset < len(data):
        if len(data) - offset < ATTRIBUTE_HEADER.size:
            raise DecodeError('Truncated attribute at offset %d' % offset)
        attr_type, attr_length = ATTRIBUTE_HEADER.unpack_from(data, offset)
        if attr_length < ATTRIBUTE_HEADER.size or offset + attr_length > len(data):
            raise DecodeError('Invalid length %d of attribute %d' % (attr_length, attr_type))
        attributes.append((attr_type, data[offset + 2:offset + attr_length]))
        offset += attr_length
    return attributes


def build_status_server(secret=RADSEC_SECRET, identifier=None, authenticator=None,
                        nas_identifier=None):
    """
    Status-Server request carrying a Message-Authenticator, which is an
    HMAC-MD5 over the whole packet computed with the authenticator field
    zeroed out.
    """
    if identifier is None:
        identifier = os.urandom(1)[0]
    if authenticator is None:
        authenticator = os.urandom(16)

    attributes = []
    if nas_identifier:
        attributes.append((ATTR_NAS_IDENTIFIER, nas_identifier.encode('utf-8')))
    attributes.append((ATTR_MESSAGE_AUTHENTICATOR, b'\0' * 16))

    body = encode_attributes(attributes)
    length = HEADER.size + len(body)
    packet = HEADER.pack(STATUS_SERVER, identifier, length, authenticator) + body
    digest = hmac.new(secret, packet, hashlib.md5).digest()
    # Message-Authenticator is the last attribute
    return packet[:-16] + digest


def decode_packet(data):
    if len(data) < HEADER.size:
        raise DecodeError('Short reply: got %d of %d header bytes' % (len(data), HEADER.size))
    code, identifier, length, authenticator = HEADER.unpack_from(data)
    if length < HEADER.size or length > MAX_PACKET_SIZE:
        raise DecodeError('Invalid packet length %d' % length)
    if len(data) < length:
        raise DecodeError('Short reply: got %d of %d bytes' % (len(data), length))
    attributes = decode_attributes(data[HEADER.size:length])
    return Packet(code, identifier, authenticator, attributes, data[:length])


def verify_response(response, request, secret=RADSEC_SECRET):
    """
    Checks that `response` answers `request`: same identifier, a response
    authenticator of MD5(code, identifier, length, request authenticator,
    attributes, secret) and, if present, a valid Message-Authenticator.
    """
    request_id = request[1]
    request_authenticator = request[4:20]

    if response.identifier != request_id:
        raise DecodeError('Reply identifier %d does not match request %d' %
                          (response.identifier, request_id))

    raw = response.raw
    expected = hashlib.md5(raw[:4] + request_authenticator + raw[20:] + secret).digest()
    if not hmac.compare_digest(expected, response.authenticator):
        raise DecodeError('Invalid response authenticator, wrong shared secret?')

    offset = HEADER.size
    for attr_type, value in response.attributes:
        if attr_type == ATTR_MESSAGE_AUTHENTICATOR:
            if len(value) != 16:
                raise DecodeError('Invalid Message-Authenticator length %d' % len(value))
            zeroed = (raw[:4] + request_authenticator + raw[20:offset + 2] + b'\0' * 16 +
                      raw[offset + 18:])
            digest = hmac.new(secret, zeroed, hashlib.md5).digest()
            if not hmac.compare_digest(digest, value):
                raise DecodeError('Invalid Message-Authenticator in reply')
        offset += len(value) + 2


def reply_messages(packet):
    return [v.decode('utf-8', 'replace') for t, v in packet.attributes if t == ATTR_REPLY_MESSAGE]


def evaluate_response(packet):
    name = CODE_NAMES.get(packet.code, 'code %d' % packet.code)
    text = 'Received %s' % name
    messages = reply_messages(packet)
    if messages:
        text += ' (%s)' % ', '.join(messages)

    if packet.code == ACCESS_ACCEPT:
        return Status.OK, text
    if packet.code == ACCESS_REJECT:
        return Status.CRITICAL, text
    return Status.UNKNOWN, 'Unexpected reply: %s' % text


def discover(realm, resolver=None):
    """
    Looks up the RadSec server of `realm`: NAPTR records with the eduroam
    RadSec service and the 's' flag, ordered by order and preference, lead
    to SRV records, the first of which by priority and weight is returned.
    """
    resolver = resolver or dns.resolver.Resolver()
    try:
        naptrs = resolver.resolve(realm, 'NAPTR')
    except dns.exception.DNSException as e:
        raise DiscoveryError('No NAPTR records for %s: %s' % (realm, e))

    candidates = sorted(
        (r for r in naptrs
         if r.service.decode('ascii').lower() == NAPTR_SERVICE and r.flags.decode('ascii').lower() == 's'),
        key=lambda r: (r.order, r.preference))
    if not candidates:
        raise DiscoveryError('No %s NAPTR record for %s' % (NAPTR_SERVICE, realm))

    for naptr in candidates:
        srv_name = naptr.replacement.to_text(omit_final_dot=True)
        try:
            srvs = resolver.resolve(srv_name, 'SRV')
        except dns.exception.DNSException as e:
            logger.info('SRV lookup of %s failed: %s', srv_name, e)
            continue
        srv = sorted(srvs, key=lambda r: (r.priority, -r.weight))[0]
        target = Target(srv.target.to_text(omit_final_dot=True), srv.port)
        logger.info('discovered %s:%d for realm %s', target.host, target.port, realm)
        return target

    raise DiscoveryError('No usable SRV record for realm %s' % realm)


def cert_days_left(peer_cert, now=None):
    if not peer_cert or 'notAfter' not in peer_cert:
        return None
    expires = ssl.cert_time_to_seconds(peer_cert['notAfter'])
    now = now or datetime.datetime.now(datetime.timezone.utc).timestamp()
    return (expires - now) / 86400.0


def recv_packet(sock):
    data = b''
    length = HEADER.size
    while len(data) < length:
        chunk = sock.recv(length - len(data))
        if not chunk:
            break
        data += chunk
        if len(data) >= 4 and length == HEADER.size:
            length = max(struct.unpack_from('>H', data, 2)[0], HEADER.size)
            if length > MAX_PACKET_SIZE:
                break
    return data


class RadsecCheck(Plugin):
    """Check a RadSec server with a RADIUS Status-Server request"""

    shortname = 'RADSEC'
    default_port = None
    host_required = False
    measure_time = True
    message_join_all = ', '

    def add_extra_args(self):
        self.arg_parser.add_argument('-D', '--realm',
                                     help='discover the server of this realm through NAPTR/SRV')
        self.arg_parser.add_argument('--cert', help='client certificate (PEM)')
        self.arg_parser.add_argument('--key', help='client private key (PEM)')
        self.arg_parser.add_argument('--ca', help='CA certificates to verify the server with')
        self.arg_parser.add_argument('--secret', default=RADSEC_SECRET.decode('ascii'),
                                     help='RADIUS shared secret (default: %(default)s)')
        self.arg_parser.add_argument('--no-hostname-check', action='store_true',
                                     help='do not match the server certificate against the host name')

    def target(self):
        if self.args.host:
            return Target(self.args.host, self.args.port or RADSEC_PORT)
        if self.args.realm:
            target = discover(self.args.realm)
            return Target(target.host, self.args.port or target.port)
        raise PluginError('Either --host or --realm is required')

    def ssl_context(self):
        context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
        context.check_hostname = not self.args.no_hostname_check
        if self.args.ca:
            context.load_verify_locations(self.args.ca)
        else:
            context.load_default_certs()
        if self.args.cert:
            context.load_cert_chain(self.args.cert, self.args.key)
        return context

    def exchange(self, target, request):
        logger.info('connecting to %s:%d', target.host, target.port)
        try:
            context = self.ssl_context()
            sock = socket.create_connection(target)
        except (OSError, ssl.SSLError) as e:
            raise ConnectionFailure('Could not connect to %s:%d: %s' % (target.host, target.port, e))
        with sock:
            try:
                with context.wrap_socket(sock, server_hostname=target.host) as tls:
                    logger.debug('TLS established: %s %s', tls.version(), tls.cipher())
                    self.peer_cert = tls.getpeercert()
                    tls.sendall(request)
                    return recv_packet(tls)
            except ssl.SSLError as e:
                raise ConnectionFailure('TLS handshake with %s failed: %s' % (target.host, e))
            except OSError as e:
                raise ConnectionFailure('Error talking to %s: %s' % (target.host, e))

    def run(self, result):
        secret = self.args.secret.encode('utf-8')
        target = self.target()
        request = build_status_server(secret, nas_identifier=socket.gethostname())
        self.peer_cert = None

        response = decode_packet(self.exchange(target, request))
        verify_response(response, request, secret)

        status, text = evaluate_response(response)
        if status == Status.UNKNOWN:
            raise PluginError(text, status)

        result.add_message(status, '%s from %s:%d' % (text, target.host, target.port))
        result.add_message(self.threshold.get_status(self.elapsed()),
                           'response time %.3f seconds' % self.elapsed())

        days = cert_days_left(self.peer_cert)
        if days is not None:
            result.add_perfdata('cert_days', round(days, 1), minimum=0)


def main():
    RadsecCheck().start()


if __name__ == '__main__':
    main()
