"""Parsers for the /proc/net statistics files.

Two layouts are handled here:

- Paired lines (``/proc/net/netstat``, ``/proc/net/snmp``)::

      Tcp: RtoAlgorithm RtoMin ActiveOpens ...
      Tcp: 1 200 3821 ...

- Sparse IPv6 counters (``/proc/net/snmp6``)::

      Ip6InReceives                   	2871
      Icmp6InMsgs                     	12

Both produce a stat namespace: ``{protocol: {field: raw_value}}``.
"""

from collections.abc import Iterable, Iterator
import logging
from pathlib import Path
import re

logger = logging.getLogger(__name__)

StatNamespace = dict[str, dict[str, str]]

DEFAULT_FIELDS_PATTERN = (
    r"^(.*_(InErrors|InErrs)|Ip_Forwarding|Ip(6|Ext)_(InOctets|OutOctets)|Icmp6?_(InMsgs|OutMsgs)"
    r"|TcpExt_(Listen.*|Syncookies.*|TCPSynRetrans)"
    r"|Tcp_(ActiveOpens|InSegs|OutSegs|OutRsts|PassiveOpens|RetransSegs|CurrEstab)"
    r"|Udp6?_(InDatagrams|OutDatagrams|NoPorts|RcvbufErrors|SndbufErrors))$"
)


class StatParseError(Exception):
    """Base exception for malformed kernel statistics.

    Attributes:
        source: File or stream name the data came from
    """

    def __init__(self, message: str, source: str = "") -> None:
        super().__init__(message)
        self.source = source

    def __str__(self) -> str:
        message = super().__str__()
        return f"{self.source}: {message}" if self.source else message


class FormatMismatchError(StatParseError):
    """Raised when a header line and its value line do not line up.

    This means the kernel interface changed shape; the whole file is rejected.
    """


class InvalidStatValueError(StatParseError):
    """Raised when a counter value is not a number."""


def _pairs(lines: Iterable[str]) -> Iterator[tuple[str, str | None]]:
    """Yield (header, values) line pairs, skipping blank lines."""
    rows = (line for line in lines if line.strip())
    for header in rows:
        yield header, next(rows, None)


def parse_paired_stats(lines: Iterable[str], source: str = "") -> StatNamespace:
    """Parse a paired header/value statistics file.

    Args:
        lines: Lines of the file
        source: Name used in error messages

    Returns:
        Stat namespace mapping protocol to field -> raw value

    Raises:
        FormatMismatchError: If a header has no value line, names a different
            protocol, or has a different number of tokens than its value line
    """
    stats: StatNamespace = {}
    for header, values in _pairs(lines):
        name_parts = header.split()
        protocol = name_parts[0].rstrip(":")
        if values is None:
            raise FormatMismatchError(f"missing value line for {protocol}", source)

        value_parts = values.split()
        if value_parts[0].rstrip(":") != protocol:
            raise FormatMismatchError(
                f"value line for {value_parts[0].rstrip(':')} follows header for {protocol}",
                source,
            )
        if len(name_parts) != len(value_parts):
            raise FormatMismatchError(
                f"field count mismatch for {protocol}: "
                f"{len(name_parts) - 1} names, {len(value_parts) - 1} values",
                source,
            )
        stats[protocol] = dict(zip(name_parts[1:], value_parts[1:], strict=True))
    return stats


def parse_snmp6_stats(lines: Iterable[str]) -> StatNamespace:
    """Parse the sparse ``/proc/net/snmp6`` layout.

    The protocol is the first token up to and including its ``6`` marker
    (``Icmp6InMsgs`` -> ``Icmp6`` / ``InMsgs``). Lines with fewer than two
    tokens, or without the marker, are skipped.
    """
    stats: StatNamespace = {}
    for line in lines:
        fields = line.split()
        if len(fields) < 2:
            continue
        marker = fields[0].find("6")
        if marker == -1:
            continue
        protocol, name = fields[0][: marker + 1], fields[0][marker + 1 :]
        stats.setdefault(protocol, {})[name] = fields[1]
    return stats


def read_paired_stats(path: Path) -> StatNamespace:
    """Read a paired-line statistics file.

    Raises:
        OSError: If the file cannot be read
        FormatMismatchError: If the file is malformed
    """
    with open(path) as f:
        return parse_paired_stats(f, str(path))


def read_snmp6_stats(path: Path) -> StatNamespace:
    """Read ``/proc/net/snmp6``; a missing file yields an empty namespace.

    Hosts with IPv6 disabled do not have this file.
    """
    try:
        with open(path) as f:
            return parse_snmp6_stats(f)
    except FileNotFoundError:
        logger.debug("IPv6 statistics file %s not present, skipping", path)
        return {}


def merge_namespaces(*namespaces: StatNamespace) -> StatNamespace:
    """Union stat namespaces in order; a later protocol entry replaces an earlier one.

    Collisions only happen between equivalent counters exported by different
    kernel subsystems.
    """
    merged: StatNamespace = {}
    for namespace in namespaces:
        merged.update(namespace)
    return merged


def iter_stat_values(stats: StatNamespace, source: str = "") -> Iterator[tuple[str, str, float]]:
    """Yield ``(protocol, field, value)`` with every value parsed as float.

    Raises:
        InvalidStatValueError: On the first value that is not a number
    """
    for protocol, fields in stats.items():
        for name, raw in fields.items():
            try:
                value = float(raw)
            except ValueError as e:
                raise InvalidStatValueError(
                    f"invalid value {raw!r} for {protocol}_{name}", source
                ) from e
            yield protocol, name, value


def filter_stats(
    stats: StatNamespace,
    pattern: re.Pattern[str] | str = DEFAULT_FIELDS_PATTERN,
) -> dict[str, float]:
    """Compose ``protocol_field`` keys and keep the ones matching ``pattern``.

    Every value is parsed before filtering, so a malformed counter fails the
    snapshot even when its key would have been dropped.

    Raises:
        InvalidStatValueError: If any value is not a number
    """
    regex = re.compile(pattern) if isinstance(pattern, str) else pattern
    selected: dict[str, float] = {}
    for protocol, name, value in iter_stat_values(stats):
        key = f"{protocol}_{name}"
        if regex.search(key):
            selected[key] = value
    return selected
