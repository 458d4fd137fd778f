"""
Thin synchronous wrapper around pysnmp's asyncio high level API, one
blocking call per request.
"""
import asyncio
import logging

from pysnmp.hlapi.v3arch.asyncio import (
    CommunityData,
    ContextData,
    ObjectIdentity,
    ObjectType,
    SnmpEngine,
    UdpTransportTarget,
    get_cmd,
    walk_cmd,
)
from pysnmp.proto.rfc1905 import EndOfMibView, NoSuchInstance, NoSuchObject

from svcmon.nagios.plugin import ConnectionFailure

logger = logging.getLogger(__name__)

SNMP_PORT = 161
MISSING_VALUES = (NoSuchObject, NoSuchInstance, EndOfMibView)


class SnmpClient(object):

    def __init__(self, host, community='public', port=SNMP_PORT, timeout=2, retries=1):
        self.host = host
        self.community = community
        self.port = port or SNMP_PORT
        self.timeout = timeout
        self.retries = retries

    async def _transport(self):
        return await UdpTransportTarget.create((self.host, self.port),
                                               timeout=self.timeout, retries=self.retries)

    def _auth(self):
        # SNMP v2c
        return CommunityData(self.community, mpModel=1)

    async def _get(self, oids):
        error_indication, error_status, error_index, var_binds = await get_cmd(
            SnmpEngine(), self._auth(), await self._transport(), ContextData(),
            *[ObjectType(ObjectIdentity(oid)) for oid in oids], lookupMib=False)
        self._raise_for_error(error_indication, error_status, error_index, var_binds)
        # agents answer unsupported OIDs with noSuchObject or noSuchInstance
        return dict((str(name), value) for name, value in var_binds
                    if not isinstance(value, MISSING_VALUES))

    async def _walk(self, oid):
        rows = {}
        async for (error_indication, error_status, error_index, var_binds) in walk_cmd(
                SnmpEngine(), self._auth(), await self._transport(), ContextData(),
                ObjectType(ObjectIdentity(oid)), lexicographicMode=False, lookupMib=False):
            self._raise_for_error(error_indication, error_status, error_index, var_binds)
            for name, value in var_binds:
                rows[str(name)] = value
        return rows

    def _raise_for_error(self, error_indication, error_status, error_index, var_binds):
        if error_indication:
            raise ConnectionFailure('SNMP request to %s failed: %s' % (self.host, error_indication))
        if error_status:
            where = var_binds[int(error_index) - 1][0] if error_index else '?'
            raise ConnectionFailure('SNMP error from %s: %s at %s' %
                                    (self.host, error_status.prettyPrint(), where))

    def get(self, oids):
        """Returns {oid: value} for the given scalar OIDs"""
        logger.debug('GET %s from %s', oids, self.host)
        return asyncio.run(self._get(oids))

    def walk(self, oid):
        """Returns {oid: value} for the subtree below `oid`"""
        logger.debug('WALK %s on %s', oid, self.host)
        return asyncio.run(self._walk(oid))

    def walk_columns(self, columns):
        """
        Walks a number of table columns and returns {index: {column: value}}.
        `columns` maps column names to column OIDs.
        """
        table = {}
        for column, base in columns.items():
            for oid, value in self.walk(base).items():
                index = oid[len(base) + 1:]
                table.setdefault(index, {})[column] = value
        return table
