"""Notifications when USB devices are connected or disconnected.

Events come from the kernel's udev netlink multicast group.
"""

from __future__ import annotations

import enum
import errno as _errno
import logging
import re
import socket
import struct
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional, Tuple, Union

from .enumeration import DeviceId, DeviceInfo
from .sysfs import SysfsError, SysfsPath, probe_device

log = logging.getLogger(__name__)

UDEV_MAGIC = b"libudev\x00\xfe\xed\xca\xfe"
UDEV_MULTICAST_GROUP = 1 << 1
NETLINK_KOBJECT_UEVENT = 15
_RECV_SIZE = 8192
_HEADER_LEN = 24
_PROPERTIES_LAYOUT = struct.Struct("=II")
_DEC_U8 = re.compile(r"\+?[0-9]+")


@dataclass(frozen=True)
class Connected:
    """A device has been connected."""

    device: DeviceInfo


@dataclass(frozen=True)
class Disconnected:
    """A device has been disconnected."""

    device_id: DeviceId


HotplugEvent = Union[Connected, Disconnected]


class TransferError(enum.Enum):
    """Reason a USB transfer failed."""

    CANCELLED = "cancelled"
    STALL = "stall"
    DISCONNECTED = "disconnected"
    FAULT = "fault"
    UNKNOWN = "unknown"


def _errno_table() -> dict:
    groups = {
        TransferError.DISCONNECTED: ("ENODEV", "ESHUTDOWN"),
        TransferError.STALL: ("EPIPE",),
        TransferError.CANCELLED: ("ENOENT", "ECONNRESET", "ETIMEDOUT"),
        TransferError.FAULT: ("EPROTO", "EILSEQ", "EOVERFLOW", "ECOMM", "ETIME"),
    }
    table = {}
    for error, names in groups.items():
        for name in names:
            code = getattr(_errno, name, None)
            if code is not None:
                table[code] = error
    return table


_ERRNO_TABLE = _errno_table()


def errno_to_transfer_error(errno: int) -> TransferError:
    """Classify an OS error number reported for a USB transfer."""
    return _ERRNO_TABLE.get(abs(errno), TransferError.UNKNOWN)


def _parse_u8(s: str) -> Optional[int]:
    if not _DEC_U8.fullmatch(s):
        return None
    value = int(s)
    return value if value <= 0xFF else None


def parse_properties(buf: bytes) -> Iterator[Tuple[str, str]]:
    """Split NUL-separated ``key=value`` pairs, skipping malformed entries."""
    for entry in bytes(buf).split(b"\x00"):
        try:
            text = entry.decode("utf-8")
        except UnicodeDecodeError:
            continue
        key, sep, value = text.partition("=")
        if sep:
            yield key, value


def parse_packet(buf: bytes, sys_root: Union[str, Path] = "/sys") -> Optional[HotplugEvent]:
    """Turn a udev netlink message into an event.

    Returns None for messages that are malformed or do not describe the
    addition or removal of a USB device. Added devices are probed under
    `sys_root`.
    """
    buf = bytes(buf)
    if len(buf) < _HEADER_LEN:
        log.error("packet too short: %s", buf.hex())
        return None
    if not buf.startswith(UDEV_MAGIC):
        log.error("packet does not start with expected header: %s", buf.hex())
        return None

    offset, length = _PROPERTIES_LAYOUT.unpack_from(buf, 16)
    if offset + length > len(buf):
        log.error(
            "properties offset=%d length=%d exceeds buffer length %d",
            offset,
            length,
            len(buf),
        )
        return None
    properties = buf[offset:offset + length]

    is_add: Optional[bool] = None
    busnum: Optional[int] = None
    devnum: Optional[int] = None
    devpath: Optional[str] = None

    for key, value in parse_properties(properties):
        log.debug("uevent property %s = %s", key, value)
        if key == "SUBSYSTEM" and value != "usb":
            return None
        if key == "DEVTYPE" and value != "usb_device":
            return None
        if key == "ACTION":
            if value == "add":
                is_add = True
            elif value == "remove":
                is_add = False
            else:
                return None
        elif key == "BUSNUM":
            busnum = _parse_u8(value)
        elif key == "DEVNUM":
            devnum = _parse_u8(value)
        elif key == "DEVPATH":
            devpath = value

    if is_add is None or busnum is None or devnum is None or devpath is None:
        return None

    if not is_add:
        return Disconnected(DeviceId(bus=busnum, addr=devnum))

    path = Path(sys_root) / devpath.lstrip("/")
    try:
        return Connected(probe_device(SysfsPath(path)))
    except SysfsError as exc:
        log.warning("Failed to probe device %s: %s", path, exc)
        return None


def _open_uevent_socket() -> socket.socket:
    family = getattr(socket, "AF_NETLINK", None)
    if family is None:
        raise OSError(
            _errno.EAFNOSUPPORT, "netlink sockets are not supported on this platform"
        )
    sock = socket.socket(family, socket.SOCK_RAW, NETLINK_KOBJECT_UEVENT)
    try:
        sock.bind((0, UDEV_MULTICAST_GROUP))
    except OSError:
        sock.close()
        raise
    return sock


class HotplugWatch:
    """Blocking iterator of device connection and disconnection events.

    Without a socket, one bound to the udev multicast group is opened.
    Use as a context manager or call `close` when done.
    """

    def __init__(self, sock=None, sys_root: Union[str, Path] = "/sys") -> None:
        self._sock = sock if sock is not None else _open_uevent_socket()
        self._sys_root = Path(sys_root)

    def fileno(self) -> int:
        """File descriptor of the underlying socket, for use with select."""
        if self._sock is None:
            raise ValueError("watch is closed")
        return self._sock.fileno()

    def close(self) -> None:
        """Stop watching and release the socket."""
        if self._sock is not None:
            sock, self._sock = self._sock, None
            sock.close()

    @property
    def closed(self) -> bool:
        """Whether the watch has been closed."""
        return self._sock is None

    def __iter__(self) -> "HotplugWatch":
        return self

    def __next__(self) -> HotplugEvent:
        while self._sock is not None:
            data, address = self._sock.recvfrom(_RECV_SIZE)
            groups = address[1] if isinstance(address, tuple) and len(address) > 1 else None
            # Only root can send to the multicast group; unicast may come from anyone.
            if groups != UDEV_MULTICAST_GROUP:
                log.warning("udev netlink socket received message from %r", address)
                continue
            event = parse_packet(data, self._sys_root)
            if event is not None:
                return event
        raise StopIteration

    def __enter__(self) -> "HotplugWatch":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


def watch_devices() -> HotplugWatch:
    """Start watching for devices being connected or disconnected.

    Raises OSError if the udev netlink socket cannot be opened.
    """
    return HotplugWatch()