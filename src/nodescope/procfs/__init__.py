"""Readers for Linux procfs network statistics.

- netstat: paired-line and IPv6 counter files, merge and field filtering
- sockets: socket state codec and per-state connection tallies
"""

from nodescope.procfs.netstat import (
    DEFAULT_FIELDS_PATTERN,
    FormatMismatchError,
    InvalidStatValueError,
    StatNamespace,
    StatParseError,
    filter_stats,
    merge_namespaces,
    parse_paired_stats,
    parse_snmp6_stats,
    read_paired_stats,
    read_snmp6_stats,
)
from nodescope.procfs.sockets import (
    PROTOCOLS,
    TCP,
    UDP,
    SocketState,
    SocketTally,
    decode_state,
    parse_socket_table,
    read_socket_table,
    tally_key,
    tally_to_keys,
)

__all__ = [
    "DEFAULT_FIELDS_PATTERN",
    "FormatMismatchError",
    "InvalidStatValueError",
    "StatNamespace",
    "StatParseError",
    "filter_stats",
    "merge_namespaces",
    "parse_paired_stats",
    "parse_snmp6_stats",
    "read_paired_stats",
    "read_snmp6_stats",
    "PROTOCOLS",
    "TCP",
    "UDP",
    "SocketState",
    "SocketTally",
    "decode_state",
    "parse_socket_table",
    "read_socket_table",
    "tally_key",
    "tally_to_keys",
]
