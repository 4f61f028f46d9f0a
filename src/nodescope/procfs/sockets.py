"""Socket state decoding for /proc/net/{tcp,udp} style tables.

The kernel prints one connection per line with its state as a two-digit
hex code in the ``st`` column. Host-wide and per-container accounting both go
through :func:`parse_socket_table`, so the two paths always agree on state
names.
"""

from collections import Counter
from collections.abc import Iterable
from enum import Enum
import logging
from pathlib import Path

logger = logging.getLogger(__name__)

TCP = "tcp"
UDP = "udp"
PROTOCOLS = (TCP, UDP)

# Column of the connection state in a socket table row:
#   sl  local_address rem_address   st tx_queue:rx_queue ...
STATE_COLUMN = 3

SocketTally = Counter[tuple[str, "SocketState"]]


class SocketState(str, Enum):
    """Connection states the kernel reports, keyed by their hex code."""

    ESTABLISHED = "01"
    SYN_SENT = "02"
    SYN_RECV = "03"
    FIN_WAIT1 = "04"
    FIN_WAIT2 = "05"
    TIME_WAIT = "06"
    CLOSE = "07"
    CLOSE_WAIT = "08"
    LAST_ACK = "09"
    LISTEN = "0A"
    CLOSING = "0B"


_STATES_BY_CODE: dict[str, SocketState] = {state.value: state for state in SocketState}


def decode_state(code: str) -> SocketState | None:
    """Map a two-digit hex state code to its SocketState.

    Returns None for any code outside the tracked set; newer kernels emit
    states (e.g. ``0C`` NEW_SYN_RECV) that are deliberately not counted.
    """
    return _STATES_BY_CODE.get(code.strip().upper())


def tally_key(protocol: str, state: SocketState) -> str:
    """Return the metric key for a tally entry, e.g. ``TCP_LISTEN``."""
    return f"{protocol.upper()}_{state.name}"


def parse_socket_table(lines: Iterable[str], protocol: str) -> SocketTally:
    """Count connections per state in a socket table.

    The first line is the column header and is discarded. Rows too short to
    carry a state column, and rows with an unknown state code, are skipped.

    Args:
        lines: Lines of a /proc/net/tcp or /proc/net/udp style file
        protocol: Protocol the table belongs to (``tcp`` or ``udp``)

    Returns:
        Counter keyed by ``(protocol, state)``; a fresh one on every call
    """
    tally: SocketTally = Counter()
    rows = iter(lines)
    next(rows, None)
    for line in rows:
        fields = line.split()
        if len(fields) <= STATE_COLUMN:
            continue
        state = decode_state(fields[STATE_COLUMN])
        if state is None:
            continue
        tally[(protocol, state)] += 1
    return tally


def read_socket_table(path: Path, protocol: str) -> SocketTally:
    """Read and tally a socket table file.

    Raises:
        OSError: If the file cannot be read
    """
    with open(path) as f:
        return parse_socket_table(f, protocol)


def tally_to_keys(tally: SocketTally) -> Counter[str]:
    """Flatten a tally into metric keys, dropping zero entries."""
    flat: Counter[str] = Counter()
    for (protocol, state), count in tally.items():
        if count > 0:
            flat[tally_key(protocol, state)] += count
    return flat
