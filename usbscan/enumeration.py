"""Information about USB devices and buses that is available without opening them."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple


@dataclass(frozen=True)
class DeviceId:
    """Opaque identifier of a connected device: its bus number and address."""

    bus: int
    addr: int


class Speed(enum.Enum):
    """USB connection speed, ordered from slowest to fastest."""

    LOW = "low"
    """Low speed (1.5 Mbit)."""
    FULL = "full"
    """Full speed (12 Mbit)."""
    HIGH = "high"
    """High speed (480 Mbit)."""
    SUPER = "super"
    """Super speed (5000 Mbit)."""
    SUPER_PLUS = "super+"
    """Super speed plus (10000 Mbit)."""

    @property
    def _rank(self) -> int:
        return list(type(self)).index(self)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Speed):
            return NotImplemented
        return self._rank < other._rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, Speed):
            return NotImplemented
        return self._rank <= other._rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, Speed):
            return NotImplemented
        return self._rank > other._rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, Speed):
            return NotImplemented
        return self._rank >= other._rank

    @classmethod
    def from_str(cls, s: str) -> Optional["Speed"]:
        """Parse a speed name or its rate in Mbit, or return None if unknown."""
        return _SPEED_NAMES.get(s)


_SPEED_NAMES = {
    "low": Speed.LOW,
    "1.5": Speed.LOW,
    "full": Speed.FULL,
    "12": Speed.FULL,
    "high": Speed.HIGH,
    "480": Speed.HIGH,
    "super": Speed.SUPER,
    "5000": Speed.SUPER,
    "super+": Speed.SUPER_PLUS,
    "10000": Speed.SUPER_PLUS,
}


class UsbControllerType(enum.Enum):
    """Type of a USB host controller."""

    XHCI = "xhci"
    """xHCI controller (USB 3.0+)."""
    EHCI = "ehci"
    """EHCI controller (USB 2.0)."""
    OHCI = "ohci"
    """OHCI controller (USB 1.1)."""
    UHCI = "uhci"
    """UHCI controller (USB 1.x)."""
    VHCI = "vhci"
    """VHCI controller (virtual USB)."""

    @classmethod
    def from_str(cls, s: str) -> Optional["UsbControllerType"]:
        """Detect the controller type from a driver name such as ``xhci_hcd``.

        Looks at the letter before the first ``hci`` in the name; returns
        None if there is none or it names no known controller.
        """
        lower = s.lower()
        index = lower.find("hci")
        if index <= 0:
            return None
        return _CONTROLLER_LETTERS.get(lower[index - 1])


_CONTROLLER_LETTERS = {
    "x": UsbControllerType.XHCI,
    "e": UsbControllerType.EHCI,
    "o": UsbControllerType.OHCI,
    "v": UsbControllerType.VHCI,
    "u": UsbControllerType.UHCI,
}


@dataclass(frozen=True)
class InterfaceInfo:
    """Summary of a device interface, available before opening the device."""

    interface_number: int
    interface_class: int
    subclass: int
    protocol: int
    interface_string: Optional[str] = None

    def __repr__(self) -> str:
        return (
            "InterfaceInfo("
            f"interface_number={self.interface_number}, "
            f"interface_class=0x{self.interface_class:02X}, "
            f"subclass=0x{self.subclass:02X}, "
            f"protocol=0x{self.protocol:02X}, "
            f"interface_string={self.interface_string!r})"
        )


@dataclass(frozen=True)
class DeviceInfo:
    """Information about a device that can be read without opening it."""

    busnum: int
    device_address: int
    vendor_id: int
    product_id: int
    device_version: int
    device_class: int
    subclass: int
    protocol: int
    max_packet_size_0: int
    bus_id: str = ""
    port_chain: Tuple[int, ...] = ()
    speed: Optional[Speed] = None
    manufacturer_string: Optional[str] = None
    product_string: Optional[str] = None
    serial_number: Optional[str] = None
    interfaces: Tuple[InterfaceInfo, ...] = ()
    sysfs_path: Optional[Path] = None

    def __post_init__(self) -> None:
        if not self.bus_id:
            object.__setattr__(self, "bus_id", f"{self.busnum:03}")
        object.__setattr__(self, "port_chain", tuple(self.port_chain))
        object.__setattr__(self, "interfaces", tuple(self.interfaces))

    def id(self) -> DeviceId:
        """Opaque identifier of the device."""
        return DeviceId(bus=self.busnum, addr=self.device_address)

    def __repr__(self) -> str:
        return (
            "DeviceInfo("
            f"bus_id={self.bus_id!r}, "
            f"device_address={self.device_address}, "
            f"port_chain={list(self.port_chain)}, "
            f"vendor_id=0x{self.vendor_id:04X}, "
            f"product_id=0x{self.product_id:04X}, "
            f"device_version=0x{self.device_version:04X}, "
            f"device_class=0x{self.device_class:02X}, "
            f"subclass=0x{self.subclass:02X}, "
            f"protocol=0x{self.protocol:02X}, "
            f"max_packet_size_0={self.max_packet_size_0}, "
            f"speed={self.speed}, "
            f"manufacturer_string={self.manufacturer_string!r}, "
            f"product_string={self.product_string!r}, "
            f"serial_number={self.serial_number!r}, "
            f"sysfs_path={self.sysfs_path!r}, "
            f"busnum={self.busnum}, "
            f"interfaces={list(self.interfaces)!r})"
        )


@dataclass(frozen=True)
class BusInfo:
    """Information about a system USB bus, represented by its root hub."""

    busnum: int
    root_hub: DeviceInfo
    sysfs_path: Optional[Path] = None
    parent_sysfs_path: Optional[Path] = None
    driver: Optional[str] = None
    bus_id: str = ""
    controller_type: Optional[UsbControllerType] = None

    def __post_init__(self) -> None:
        if not self.bus_id:
            object.__setattr__(self, "bus_id", f"{self.busnum:03}")

    def system_name(self) -> Optional[str]:
        """System name of the bus: the root hub's product string."""
        return self.root_hub.product_string

    def __repr__(self) -> str:
        return (
            "BusInfo("
            f"sysfs_path={self.sysfs_path!r}, "
            f"parent_sysfs_path={self.parent_sysfs_path!r}, "
            f"busnum={self.busnum}, "
            f"bus_id={self.bus_id!r}, "
            f"system_name={self.system_name()!r}, "
            f"controller_type={self.controller_type}, "
            f"driver={self.driver!r})"
        )