"""Configuration, interface and endpoint descriptors.

A configuration descriptor is followed by the interface, endpoint and
class-specific descriptors that belong to it, all of which are reached
through the classes here.
"""

from __future__ import annotations

import logging
import struct
from typing import Dict, Iterator, List, Optional

from .descriptors import (
    DESCRIPTOR_LEN_CONFIGURATION,
    DESCRIPTOR_LEN_ENDPOINT,
    DESCRIPTOR_LEN_INTERFACE,
    DESCRIPTOR_TYPE_CONFIGURATION,
    DESCRIPTOR_TYPE_ENDPOINT,
    DESCRIPTOR_TYPE_INTERFACE,
    DescriptorIter,
    Direction,
    TransferType,
)

log = logging.getLogger(__name__)

_U16 = struct.Struct("<H")


def _nonzero(value: int) -> Optional[int]:
    return value or None


class _DescriptorChain:
    """Bytes of one descriptor followed by the descriptors attached to it."""

    __slots__ = ("_data",)

    def __init__(self, data: bytes) -> None:
        self._data = bytes(data)

    def _trailing(self) -> DescriptorIter:
        return DescriptorIter(self._data[self._data[0]:])

    def __eq__(self, other: object) -> bool:
        if type(other) is type(self):
            return self._data == other._data
        return NotImplemented

    def __hash__(self) -> int:
        return hash((type(self).__name__, self._data))


class ConfigurationDescriptor(_DescriptorChain):
    """A USB configuration with its interfaces, endpoints and other descriptors.

    The constructor takes the bytes as they are; use `from_bytes` to validate
    a buffer first.
    """

    __slots__ = ()

    @classmethod
    def from_bytes(cls, buf: bytes) -> "ConfigurationDescriptor":
        """Parse a buffer that begins with a configuration descriptor.

        Data after `wTotalLength` bytes is ignored. Raises ValueError when
        the buffer does not hold a valid configuration descriptor.
        """
        buf = bytes(buf)
        if len(buf) < DESCRIPTOR_LEN_CONFIGURATION:
            if buf:
                log.warning(
                    "config descriptor buffer is %d bytes, need %d",
                    len(buf),
                    DESCRIPTOR_LEN_CONFIGURATION,
                )
            raise ValueError(
                f"config descriptor buffer is {len(buf)} bytes, "
                f"need {DESCRIPTOR_LEN_CONFIGURATION}"
            )
        if buf[0] < DESCRIPTOR_LEN_CONFIGURATION:
            log.warning("invalid config descriptor bLength")
            raise ValueError("invalid config descriptor bLength")
        if buf[1] != DESCRIPTOR_TYPE_CONFIGURATION:
            log.warning(
                "config bDescriptorType is %d, not a configuration descriptor", buf[1]
            )
            raise ValueError(
                f"config bDescriptorType is {buf[1]}, not a configuration descriptor"
            )
        (total_len,) = _U16.unpack_from(buf, 2)
        if total_len < buf[0] or total_len > len(buf):
            log.warning(
                "invalid config descriptor wTotalLen of %d (buffer size is %d)",
                total_len,
                len(buf),
            )
            raise ValueError(
                f"invalid config descriptor wTotalLen of {total_len} "
                f"(buffer size is {len(buf)})"
            )
        return cls(buf[:total_len])

    def as_bytes(self) -> bytes:
        """The bytes of the configuration descriptor and all trailing descriptors."""
        return self._data

    def descriptors(self) -> DescriptorIter:
        """Iterate all trailing interface and other descriptors."""
        return self._trailing()

    def interface_alt_settings(self) -> Iterator["InterfaceDescriptor"]:
        """Iterate every interface alternate setting of this configuration."""
        for chunk in self.descriptors().split_by_type(
            DESCRIPTOR_TYPE_INTERFACE, DESCRIPTOR_LEN_INTERFACE
        ):
            yield InterfaceDescriptor(chunk)

    def interfaces(self) -> Iterator["InterfaceDescriptors"]:
        """Iterate the interfaces, grouping alternate settings by interface number.

        Interfaces come in order of their interface number.
        """
        grouped: Dict[int, List[InterfaceDescriptor]] = {}
        for alt in self.interface_alt_settings():
            grouped.setdefault(alt.interface_number, []).append(alt)
        for number in sorted(grouped):
            yield InterfaceDescriptors(number, grouped[number])

    @property
    def num_interfaces(self) -> int:
        """`bNumInterfaces`: number of interfaces."""
        return self._data[4]

    @property
    def configuration_value(self) -> int:
        """`bConfigurationValue`: identifier used to select this configuration."""
        return self._data[5]

    @property
    def attributes(self) -> int:
        """`bmAttributes`: bitmap of configuration attributes."""
        return self._data[7]

    @property
    def max_power(self) -> int:
        """`bMaxPower`: maximum power, in units of 2 mA."""
        return self._data[8]

    @property
    def string_index(self) -> Optional[int]:
        """`iConfiguration`, or None when there is no describing string."""
        return _nonzero(self._data[6])

    def __repr__(self) -> str:
        alts = ", ".join(repr(alt) for alt in self.interface_alt_settings())
        return (
            "Configuration("
            f"configuration_value={self.configuration_value}, "
            f"num_interfaces={self.num_interfaces}, "
            f"attributes={self.attributes}, "
            f"max_power={self.max_power}, "
            f"string_index={self.string_index}, "
            f"interface_alt_settings=[{alts}])"
        )


class InterfaceDescriptors:
    """The alternate settings of one interface, grouped by interface number."""

    __slots__ = ("_number", "_alts")

    def __init__(self, interface_number: int, alt_settings: List["InterfaceDescriptor"]) -> None:
        if not alt_settings:
            raise ValueError("an interface needs at least one alternate setting")
        self._number = interface_number
        self._alts = list(alt_settings)

    @property
    def interface_number(self) -> int:
        """`bInterfaceNumber`: identifier of the interface."""
        return self._number

    def alt_settings(self) -> Iterator["InterfaceDescriptor"]:
        """Iterate the alternate settings of the interface."""
        return iter(self._alts)

    def first_alt_setting(self) -> "InterfaceDescriptor":
        """The descriptor of the first alternate setting."""
        return self._alts[0]

    def __repr__(self) -> str:
        return f"InterfaceDescriptors(interface_number={self._number}, alt_settings={self._alts!r})"


class InterfaceDescriptor(_DescriptorChain):
    """One alternate setting of an interface, with its endpoints and other descriptors."""

    __slots__ = ()

    def as_bytes(self) -> bytes:
        """The bytes of the interface descriptor and all trailing descriptors."""
        return self._data

    def descriptors(self) -> DescriptorIter:
        """Iterate trailing endpoint and other descriptors up to the next interface."""
        return self._trailing()

    def endpoints(self) -> Iterator["EndpointDescriptor"]:
        """Iterate the endpoints of this alternate setting."""
        for chunk in self.descriptors().split_by_type(
            DESCRIPTOR_TYPE_ENDPOINT, DESCRIPTOR_LEN_ENDPOINT
        ):
            yield EndpointDescriptor(chunk)

    @property
    def interface_number(self) -> int:
        """`bInterfaceNumber`: identifier of the interface."""
        return self._data[2]

    @property
    def alternate_setting(self) -> int:
        """`bAlternateSetting`: identifier of this alternate setting."""
        return self._data[3]

    @property
    def num_endpoints(self) -> int:
        """`bNumEndpoints`: number of endpoints in this alternate setting."""
        return self._data[4]

    @property
    def interface_class(self) -> int:
        """`bInterfaceClass`: standard interface class."""
        return self._data[5]

    @property
    def subclass(self) -> int:
        """`bInterfaceSubClass`: standard interface subclass."""
        return self._data[6]

    @property
    def protocol(self) -> int:
        """`bInterfaceProtocol`: standard interface protocol."""
        return self._data[7]

    @property
    def string_index(self) -> Optional[int]:
        """`iInterface`, or None when there is no describing string."""
        return _nonzero(self._data[8])

    def __repr__(self) -> str:
        endpoints = ", ".join(repr(ep) for ep in self.endpoints())
        return (
            "InterfaceAltSetting("
            f"interface_number={self.interface_number}, "
            f"alternate_setting={self.alternate_setting}, "
            f"num_endpoints={self.num_endpoints}, "
            f"interface_class={self.interface_class}, "
            f"subclass={self.subclass}, "
            f"protocol={self.protocol}, "
            f"string_index={self.string_index}, "
            f"endpoints=[{endpoints}])"
        )


class EndpointDescriptor(_DescriptorChain):
    """A USB endpoint, with the descriptors that follow it."""

    __slots__ = ()

    def as_bytes(self) -> bytes:
        """The bytes of the endpoint descriptor and all trailing descriptors."""
        return self._data

    def descriptors(self) -> DescriptorIter:
        """Iterate trailing descriptors up to the next endpoint or interface."""
        return self._trailing()

    @property
    def address(self) -> int:
        """`bEndpointAddress`: endpoint address."""
        return self._data[2]

    @property
    def attributes(self) -> int:
        """Raw `bmAttributes` field."""
        return self._data[3]

    @property
    def max_packet_size_raw(self) -> int:
        """Raw `wMaxPacketSize` field."""
        return _U16.unpack_from(self._data, 4)[0]

    @property
    def interval(self) -> int:
        """`bInterval`: polling interval in frames or microframes."""
        return self._data[6]

    @property
    def direction(self) -> Direction:
        """Direction of the endpoint."""
        return Direction.from_address(self.address)

    @property
    def transfer_type(self) -> TransferType:
        """Transfer type of the endpoint."""
        return TransferType(self.attributes & 0x03)

    @property
    def max_packet_size(self) -> int:
        """Maximum packet size in bytes."""
        return self.max_packet_size_raw & ((1 << 11) - 1)

    @property
    def packets_per_microframe(self) -> int:
        """Packets per microframe (1, 2 or 3) for high-speed isochronous endpoints."""
        return ((self.max_packet_size_raw >> 11) & 0b11) + 1

    def __repr__(self) -> str:
        return (
            "Endpoint("
            f"address=0x{self.address:02X}, "
            f"direction={self.direction}, "
            f"transfer_type={self.transfer_type}, "
            f"max_packet_size={self.max_packet_size}, "
            f"packets_per_microframe={self.packets_per_microframe}, "
            f"interval={self.interval})"
        )


class ActiveConfigurationError(OSError):
    """The active configuration of a device could not be determined."""

    def __init__(self, configuration_value: int) -> None:
        self.configuration_value = configuration_value
        if configuration_value == 0:
            message = "device is not configured"
        else:
            message = f"no descriptor found for active configuration {configuration_value}"
        super().__init__(message)

    def __str__(self) -> str:
        return self.args[0]


def parse_concatenated_config_descriptors(buf: bytes) -> Iterator[ConfigurationDescriptor]:
    """Split a chain of concatenated configuration descriptors by `wTotalLength`.

    Stops at the first chunk that is not a valid configuration descriptor.
    """
    buf = bytes(buf)
    while True:
        try:
            desc = ConfigurationDescriptor.from_bytes(buf)
        except ValueError:
            return
        yield desc
        buf = buf[len(desc.as_bytes()):]