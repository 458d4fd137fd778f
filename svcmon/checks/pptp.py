"""
Checks a PPTP server by performing the start of the control connection
handshake (RFC 2637) on TCP port 1723.
"""
import collections
import logging
import socket
import struct

from svcmon.nagios.plugin import ConnectionFailure, DecodeError, Plugin, PluginError
from svcmon.nagios.status import Status

logger = logging.getLogger(__name__)

PPTP_PORT = 1723
MAGIC_COOKIE = 0x1A2B3C4D
PROTOCOL_VERSION = 0x0100

MESSAGE_TYPE_CONTROL = 1
START_CONTROL_CONNECTION_REQUEST = 1
START_CONTROL_CONNECTION_REPLY = 2

# Start-Control-Connection-Request, 156 bytes, big-endian
#   0 length                u16
#   2 PPTP message type     u16
#   4 magic cookie          u32
#   8 control message type  u16
#  10 reserved0             u16
#  12 protocol version      u16
#  14 reserved1             u16
#  16 framing capabilities  u32
#  20 bearer capabilities   u32
#  24 maximum channels      u16
#  26 firmware revision     u16
#  28 host name             64 bytes
#  92 vendor string         64 bytes
SCCRQ = struct.Struct('>HHIHHHHIIHH64s64s')

# Start-Control-Connection-Reply, 156 bytes, big-endian. Same as the
# request except that reserved1 is replaced by
#  14 result code           u8
#  15 error code            u8
SCCRP = struct.Struct('>HHIHHHBBIIHH64s64s')

Sccrp = collections.namedtuple('Sccrp', [
    'length', 'message_type', 'cookie', 'control_type', 'reserved0',
    'protocol_version', 'result_code', 'error_code', 'framing_capabilities',
    'bearer_capabilities', 'maximum_channels', 'firmware_revision',
    'hostname', 'vendor'])

RESULT_CODES = {
    1: ('Successful channel establishment', Status.OK),
    2: ('General error', Status.CRITICAL),
    3: ('Command channel already exists', Status.CRITICAL),
    4: ('Requester is not authorized to establish a command channel', Status.CRITICAL),
    5: ('The protocol version of the requester is not supported', Status.CRITICAL),
}


def build_sccrq(hostname=b'', vendor=b'svcmon'):
    return SCCRQ.pack(SCCRQ.size, MESSAGE_TYPE_CONTROL, MAGIC_COOKIE,
                      START_CONTROL_CONNECTION_REQUEST, 0, PROTOCOL_VERSION, 0,
                      1, 1, 0, 0, hostname, vendor)


def _c_string(raw):
    return raw.split(b'\0', 1)[0].decode('ascii', 'replace').strip()


def decode_sccrp(data):
    if len(data) < SCCRP.size:
        raise DecodeError('Short reply from server: got %d of %d bytes' % (len(data), SCCRP.size))

    reply = Sccrp(*SCCRP.unpack(data[:SCCRP.size]))

    if reply.length != SCCRP.size:
        raise DecodeError('Invalid length in reply: %d' % reply.length)
    if reply.message_type != MESSAGE_TYPE_CONTROL:
        raise DecodeError('Unexpected PPTP message type %d' % reply.message_type)
    if reply.cookie != MAGIC_COOKIE:
        raise DecodeError('Invalid magic cookie 0x%08X' % reply.cookie)
    if reply.control_type != START_CONTROL_CONNECTION_REPLY:
        raise DecodeError('Unexpected control message type %d' % reply.control_type)

    return reply._replace(hostname=_c_string(reply.hostname), vendor=_c_string(reply.vendor))


def evaluate_reply(reply):
    """Returns (status, text) for a decoded reply"""
    try:
        text, status = RESULT_CODES[reply.result_code]
    except KeyError:
        return Status.UNKNOWN, 'Unknown result code %d (error code %d)' % (
            reply.result_code, reply.error_code)

    if status != Status.OK:
        return status, '%s (error code %d)' % (text, reply.error_code)

    return status, 'Connected to %s (vendor %s, firmware %d, protocol %d.%d)' % (
        reply.hostname or 'unnamed server', reply.vendor or 'unknown',
        reply.firmware_revision, reply.protocol_version >> 8, reply.protocol_version & 0xff)


def recv_exactly(sock, size):
    data = b''
    while len(data) < size:
        chunk = sock.recv(size - len(data))
        if not chunk:
            break
        data += chunk
    return data


class PptpCheck(Plugin):
    """Check a PPTP server's control connection handshake"""

    shortname = 'PPTP'
    default_port = PPTP_PORT
    measure_time = True
    message_join_all = ', '

    def poll(self):
        logger.info('connecting to %s:%d', self.args.host, self.args.port)
        try:
            sock = socket.create_connection((self.args.host, self.args.port))
        except OSError as e:
            raise ConnectionFailure('Could not connect to %s:%d: %s' %
                                    (self.args.host, self.args.port, e))
        with sock:
            try:
                sock.sendall(build_sccrq())
                data = recv_exactly(sock, SCCRP.size)
            except OSError as e:
                raise ConnectionFailure('Error talking to %s: %s' % (self.args.host, e))
        logger.debug('received %d bytes', len(data))
        return data

    def run(self, result):
        reply = decode_sccrp(self.poll())
        status, text = evaluate_reply(reply)
        if status != Status.OK:
            raise PluginError(text, status)

        result.add_message(status, text)
        result.add_message(self.threshold.get_status(self.elapsed()),
                           'response time %.3f seconds' % self.elapsed())


def main():
    PptpCheck().start()


if __name__ == '__main__':
    main()
