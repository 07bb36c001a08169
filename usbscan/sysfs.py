"""Discovery of USB devices and buses through the Linux sysfs tree."""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator, List, Optional, TypeVar, Union

from .enumeration import BusInfo, DeviceInfo, InterfaceInfo, Speed, UsbControllerType

log = logging.getLogger(__name__)

T = TypeVar("T")

SYSFS_USB_PREFIX = "/sys/bus/usb/devices/"

_DEC_U8 = re.compile(r"\+?[0-9]+")
_HEX = re.compile(r"\+?[0-9A-Fa-f]+")
_DEVICE_NAME_CHARS = frozenset("0123456789-.")


def _parse_u8(s: str) -> int:
    if not _DEC_U8.fullmatch(s):
        raise ValueError(f"invalid number {s!r}")
    value = int(s)
    if value > 0xFF:
        raise ValueError(f"number {s!r} does not fit in 8 bits")
    return value


def _parse_hex(s: str) -> int:
    if not _HEX.fullmatch(s):
        raise ValueError(f"invalid hexadecimal number {s!r}")
    return int(s, 16)


class SysfsError(OSError):
    """A sysfs attribute could not be read or parsed."""

    def __init__(
        self,
        path: Union[str, Path],
        *,
        cause: Optional[BaseException] = None,
        value: Optional[str] = None,
    ) -> None:
        self.path = Path(path)
        self.cause = cause
        self.value = value
        if cause is not None:
            detail = str(cause)
        else:
            detail = "couldn't parse value " + json.dumps(
                (value or "").strip(), ensure_ascii=False
            )
        super().__init__(f"failed to read sysfs attribute {self.path}: {detail}")

    def __str__(self) -> str:
        return self.args[0]


@dataclass(frozen=True)
class SysfsPath:
    """A directory in sysfs whose files are attributes."""

    path: Path

    def __post_init__(self) -> None:
        object.__setattr__(self, "path", Path(self.path))

    def read_attr(self, attr: str, parse: Callable[[str], T] = str) -> T:
        """Read an attribute, strip surrounding whitespace and apply `parse`.

        Raises SysfsError if the file cannot be read or `parse` raises ValueError.
        """
        attr_path = self.path / attr
        try:
            raw = attr_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise SysfsError(attr_path, cause=exc) from exc
        try:
            return parse(raw.strip())
        except ValueError as exc:
            raise SysfsError(attr_path, value=raw) from exc

    def read_attr_hex(self, attr: str) -> int:
        """Read a hexadecimal attribute, with or without a ``0x`` prefix."""

        def parse(s: str) -> int:
            return _parse_hex(s[2:] if s.startswith("0x") else s)

        return self.read_attr(attr, parse)

    def readlink_attr_filename(self, attr: str) -> str:
        """The final path component of the symlink target of an attribute."""
        attr_path = self.path / attr
        try:
            target = Path(os.readlink(attr_path))
        except OSError as exc:
            raise SysfsError(attr_path, cause=exc) from exc
        if not target.name:
            raise SysfsError(
                target,
                value=f"Failed to read filename for readlink attribute {attr}",
            )
        return target.name

    def children(self) -> Iterator["SysfsPath"]:
        """Subdirectories of this directory; empty if it cannot be listed."""
        try:
            entries = list(os.scandir(self.path))
        except OSError:
            return iter(())
        return (
            SysfsPath(Path(entry.path))
            for entry in entries
            if _is_real_dir(entry)
        )


def _is_real_dir(entry: os.DirEntry) -> bool:
    try:
        return entry.is_dir(follow_symlinks=False)
    except OSError:
        return False


def _optional(path: SysfsPath, attr: str, parse: Callable[[str], T] = str) -> Optional[T]:
    try:
        return path.read_attr(attr, parse)
    except SysfsError:
        return None


def _port_chain(path: SysfsPath) -> tuple:
    devpath = _optional(path, "devpath")
    # A root hub reports devpath 0 but has an empty port chain.
    if devpath is None or devpath == "0":
        return ()
    try:
        return tuple(_parse_u8(part) for part in devpath.split("."))
    except ValueError:
        return ()


def _probe_interface(path: SysfsPath) -> Optional[InterfaceInfo]:
    try:
        return InterfaceInfo(
            interface_number=path.read_attr_hex("bInterfaceNumber"),
            interface_class=path.read_attr_hex("bInterfaceClass"),
            subclass=path.read_attr_hex("bInterfaceSubClass"),
            protocol=path.read_attr_hex("bInterfaceProtocol"),
            interface_string=_optional(path, "interface"),
        )
    except SysfsError:
        return None


def probe_device(path: Union[SysfsPath, str, Path]) -> DeviceInfo:
    """Read the description of the device at a sysfs directory.

    Raises SysfsError if a required attribute is missing or malformed.
    """
    if not isinstance(path, SysfsPath):
        path = SysfsPath(Path(path))
    log.debug("Probing device %s", path.path)

    busnum = path.read_attr("busnum", _parse_u8)
    device_address = path.read_attr("devnum", _parse_u8)
    port_chain = _port_chain(path)

    vendor_id = path.read_attr_hex("idVendor")
    product_id = path.read_attr_hex("idProduct")
    device_version = path.read_attr_hex("bcdDevice")
    device_class = path.read_attr_hex("bDeviceClass")
    subclass = path.read_attr_hex("bDeviceSubClass")
    protocol = path.read_attr_hex("bDeviceProtocol")
    max_packet_size_0 = path.read_attr("bMaxPacketSize0", _parse_u8)

    speed_name = _optional(path, "speed")
    speed = Speed.from_str(speed_name) if speed_name is not None else None

    interfaces = [
        info
        for child in path.children()
        if ":" in child.path.name
        for info in [_probe_interface(child)]
        if info is not None
    ]
    interfaces.sort(key=lambda i: i.interface_number)

    return DeviceInfo(
        busnum=busnum,
        device_address=device_address,
        vendor_id=vendor_id,
        product_id=product_id,
        device_version=device_version,
        device_class=device_class,
        subclass=subclass,
        protocol=protocol,
        max_packet_size_0=max_packet_size_0,
        bus_id=f"{busnum:03}",
        port_chain=port_chain,
        speed=speed,
        manufacturer_string=_optional(path, "manufacturer"),
        product_string=_optional(path, "product"),
        serial_number=_optional(path, "serial"),
        interfaces=tuple(interfaces),
        sysfs_path=path.path,
    )


def _probe_entries(paths: List[Path], what: str) -> Iterator[DeviceInfo]:
    for path in paths:
        try:
            yield probe_device(SysfsPath(path))
        except SysfsError as exc:
            log.warning("%s; ignoring %s", exc, what)


def list_devices(root: Union[str, Path] = SYSFS_USB_PREFIX) -> Iterator[DeviceInfo]:
    """Iterate the connected devices, leaving out root hubs and interfaces.

    Raises OSError if the sysfs directory cannot be listed.
    """
    root = Path(root)
    names = sorted(os.listdir(root))
    # Devices are named like `1-6` or `1-6.4.2`.
    paths = [root / name for name in names if set(name) <= _DEVICE_NAME_CHARS]
    return _probe_entries(paths, "device")


def list_root_hubs(root: Union[str, Path] = SYSFS_USB_PREFIX) -> Iterator[DeviceInfo]:
    """Iterate the root hubs, named ``usbN`` after their bus number.

    Raises OSError if the sysfs directory cannot be listed.
    """
    root = Path(root)
    names = sorted(os.listdir(root))
    paths = [root / name for name in names if name.startswith("usb")]
    return _probe_entries(paths, "root hub")


def _bus_from_root_hub(root_hub: DeviceInfo) -> Optional[BusInfo]:
    if root_hub.sysfs_path is None:
        return None
    try:
        resolved = root_hub.sysfs_path.resolve(strict=True)
    except (OSError, RuntimeError):
        return None
    parent = resolved.parent
    if parent == resolved:
        return None
    parent_path = SysfsPath(parent)
    log.debug("Probing parent device %s", parent)
    try:
        driver: Optional[str] = parent_path.readlink_attr_filename("driver")
    except SysfsError:
        driver = None
    return BusInfo(
        busnum=root_hub.busnum,
        root_hub=root_hub,
        sysfs_path=root_hub.sysfs_path,
        parent_sysfs_path=parent,
        driver=driver,
        bus_id=root_hub.bus_id,
        controller_type=UsbControllerType.from_str(driver) if driver else None,
    )


def list_buses(root: Union[str, Path] = SYSFS_USB_PREFIX) -> Iterator[BusInfo]:
    """Iterate the system USB buses, found through their root hubs.

    Raises OSError if the sysfs directory cannot be listed.
    """
    hubs = list_root_hubs(root)
    return (bus for bus in map(_bus_from_root_hub, hubs) if bus is not None)