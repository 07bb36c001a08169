"""Parsing of raw USB descriptors.

Descriptors are blocks of bytes that describe what a USB device offers.
"""

from __future__ import annotations

import enum
import logging
import struct
from typing import Iterator, Optional, Tuple

log = logging.getLogger(__name__)

DESCRIPTOR_TYPE_DEVICE = 0x01
DESCRIPTOR_LEN_DEVICE = 18

DESCRIPTOR_TYPE_CONFIGURATION = 0x02
DESCRIPTOR_LEN_CONFIGURATION = 9

DESCRIPTOR_TYPE_STRING = 0x03

DESCRIPTOR_TYPE_INTERFACE = 0x04
DESCRIPTOR_LEN_INTERFACE = 9

DESCRIPTOR_TYPE_ENDPOINT = 0x05
DESCRIPTOR_LEN_ENDPOINT = 7

#: Language ID for US English, the one language devices use in practice.
US_ENGLISH = 0x0409

_DEVICE_LAYOUT = struct.Struct("<BBHBBBBHHHBBBB")


class Direction(enum.Enum):
    """Direction of a transfer or endpoint, as seen from the host."""

    OUT = 0x00
    IN = 0x80

    @classmethod
    def from_address(cls, address: int) -> "Direction":
        """Direction encoded in the high bit of an endpoint address."""
        return cls.IN if address & 0x80 else cls.OUT


class TransferType(enum.Enum):
    """Endpoint transfer type, numbered as in `bmAttributes`."""

    CONTROL = 0
    ISOCHRONOUS = 1
    BULK = 2
    INTERRUPT = 3


class Descriptor:
    """A single raw descriptor, exposing its length and type fields."""

    __slots__ = ("_data",)

    def __init__(self, buf: bytes) -> None:
        data = bytes(buf)
        if len(data) < 2 or len(data) < data[0]:
            raise ValueError(
                f"buffer of {len(data)} bytes does not hold a descriptor"
            )
        self._data = data

    @property
    def descriptor_len(self) -> int:
        """The `bLength` field."""
        return self._data[0]

    @property
    def descriptor_type(self) -> int:
        """The `bDescriptorType` field."""
        return self._data[1]

    def as_bytes(self) -> bytes:
        """The bytes of the descriptor."""
        return self._data

    def __bytes__(self) -> bytes:
        return self._data

    def __len__(self) -> int:
        return len(self._data)

    def __getitem__(self, index):
        return self._data[index]

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Descriptor):
            return self._data == other._data
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._data)

    def __repr__(self) -> str:
        return f"Descriptor({self._data!r})"


def _split_first(buf: bytes) -> Optional[Tuple[bytes, bytes]]:
    if len(buf) < 2:
        return None
    length = buf[0]
    if length < 2:
        log.warning("descriptor with bLength %d can't point to next descriptor", length)
        return None
    if length > len(buf):
        log.warning(
            "descriptor with bLength %d exceeds remaining buffer length %d",
            length,
            len(buf),
        )
        return None
    return buf[:length], buf[length:]


class DescriptorIter:
    """Iterator over a sequence of concatenated descriptors."""

    __slots__ = ("_buf",)

    def __init__(self, buf: bytes) -> None:
        self._buf = bytes(buf)

    def as_bytes(self) -> bytes:
        """The concatenated bytes of the remaining descriptors."""
        return self._buf

    def __iter__(self) -> "DescriptorIter":
        return self

    def __next__(self) -> Descriptor:
        split = _split_first(self._buf)
        if split is None:
            raise StopIteration
        current, self._buf = split
        return Descriptor(current)

    def split_by_type(self, descriptor_type: int, min_len: int) -> Iterator[bytes]:
        """Yield each descriptor of the given type together with the
        descriptors that follow it, up to the next one of that type.

        Descriptors of the type shorter than `min_len` are skipped. The
        iterator itself is left untouched.
        """
        buf = self._buf
        while True:
            while True:
                split = _split_first(buf)
                if split is None:
                    return
                if buf[1] == descriptor_type:
                    if buf[0] >= min_len:
                        break
                    log.warning(
                        "ignoring descriptor of type %d and length %d because "
                        "the minimum length is %d",
                        buf[1],
                        buf[0],
                        min_len,
                    )
                buf = split[1]

            end = buf[0]
            while (
                len(buf) >= end + 2
                and buf[end] > 2
                and buf[end + 1] != descriptor_type
                and len(buf) >= end + buf[end]
            ):
                end += buf[end]

            yield buf[:end]
            buf = buf[end:]


def _nonzero(value: int) -> Optional[int]:
    return value or None


class DeviceDescriptor:
    """The 18-byte descriptor describing a USB device."""

    __slots__ = ("_data",)

    def __init__(self, data: bytes) -> None:
        self._data = bytes(data)

    @classmethod
    def from_bytes(cls, buf: bytes) -> "DeviceDescriptor":
        """Parse a buffer beginning with a device descriptor.

        Trailing data after the descriptor is ignored. Raises ValueError
        if the buffer does not start with a valid device descriptor.
        """
        buf = bytes(buf)
        if len(buf) < DESCRIPTOR_LEN_DEVICE:
            if buf:
                log.warning(
                    "device descriptor buffer is %d bytes, need %d",
                    len(buf),
                    DESCRIPTOR_LEN_DEVICE,
                )
            raise ValueError(
                f"device descriptor buffer is {len(buf)} bytes, "
                f"need {DESCRIPTOR_LEN_DEVICE}"
            )
        data = buf[:DESCRIPTOR_LEN_DEVICE]
        if data[0] < DESCRIPTOR_LEN_DEVICE:
            log.warning("invalid device descriptor bLength")
            raise ValueError("invalid device descriptor bLength")
        if data[1] != DESCRIPTOR_TYPE_DEVICE:
            log.warning("device bDescriptorType is %d, not a device descriptor", data[1])
            raise ValueError(
                f"device bDescriptorType is {data[1]}, not a device descriptor"
            )
        return cls(data)

    @classmethod
    def from_fields(
        cls,
        usb_version: int,
        device_class: int,
        subclass: int,
        protocol: int,
        max_packet_size_0: int,
        vendor_id: int,
        product_id: int,
        device_version: int,
        manufacturer_string_index: int,
        product_string_index: int,
        serial_number_string_index: int,
        num_configurations: int,
    ) -> "DeviceDescriptor":
        """Build a device descriptor from its field values."""
        return cls(
            _DEVICE_LAYOUT.pack(
                DESCRIPTOR_LEN_DEVICE,
                DESCRIPTOR_TYPE_DEVICE,
                usb_version,
                device_class,
                subclass,
                protocol,
                max_packet_size_0,
                vendor_id,
                product_id,
                device_version,
                manufacturer_string_index,
                product_string_index,
                serial_number_string_index,
                num_configurations,
            )
        )

    def _fields(self) -> tuple:
        return _DEVICE_LAYOUT.unpack(self._data)

    def as_bytes(self) -> bytes:
        """The bytes of the descriptor."""
        return self._data

    @property
    def usb_version(self) -> int:
        """`bcdUSB`: USB specification number."""
        return self._fields()[2]

    @property
    def device_class(self) -> int:
        """`bDeviceClass`: class code assigned by USB-IF."""
        return self._data[4]

    @property
    def subclass(self) -> int:
        """`bDeviceSubClass`: subclass code assigned by USB-IF."""
        return self._data[5]

    @property
    def protocol(self) -> int:
        """`bDeviceProtocol`: protocol code assigned by USB-IF."""
        return self._data[6]

    @property
    def max_packet_size_0(self) -> int:
        """`bMaxPacketSize0`: maximum packet size for endpoint 0."""
        return self._data[7]

    @property
    def vendor_id(self) -> int:
        """`idVendor`: vendor ID assigned by USB-IF."""
        return self._fields()[7]

    @property
    def product_id(self) -> int:
        """`idProduct`: product ID assigned by the manufacturer."""
        return self._fields()[8]

    @property
    def device_version(self) -> int:
        """`bcdDevice`: device release number."""
        return self._fields()[9]

    @property
    def manufacturer_string_index(self) -> Optional[int]:
        """`iManufacturer`, or None when the device has no such string."""
        return _nonzero(self._data[14])

    @property
    def product_string_index(self) -> Optional[int]:
        """`iProduct`, or None when the device has no such string."""
        return _nonzero(self._data[15])

    @property
    def serial_number_string_index(self) -> Optional[int]:
        """`iSerialNumber`, or None when the device has no such string."""
        return _nonzero(self._data[16])

    @property
    def num_configurations(self) -> int:
        """`bNumConfigurations`: number of configurations."""
        return self._data[17]

    def __eq__(self, other: object) -> bool:
        if isinstance(other, DeviceDescriptor):
            return self._data == other._data
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._data)

    def __repr__(self) -> str:
        return (
            "DeviceDescriptor("
            f"usb_version=0x{self.usb_version:04X}, "
            f"device_class=0x{self.device_class:02X}, "
            f"subclass=0x{self.subclass:02X}, "
            f"protocol=0x{self.protocol:02X}, "
            f"max_packet_size_0={self.max_packet_size_0}, "
            f"vendor_id=0x{self.vendor_id:04X}, "
            f"product_id=0x{self.product_id:04X}, "
            f"device_version=0x{self.device_version:04X}, "
            f"manufacturer_string_index={self.manufacturer_string_index}, "
            f"product_string_index={self.product_string_index}, "
            f"serial_number_string_index={self.serial_number_string_index}, "
            f"num_configurations={self.num_configurations})"
        )


def validate_string_descriptor(data: bytes) -> bool:
    """Whether `data` is exactly one well-formed string descriptor."""
    return len(data) >= 2 and data[0] == len(data) and data[1] == DESCRIPTOR_TYPE_STRING


def decode_string_descriptor(data: bytes) -> str:
    """Decode the UTF-16LE text of a string descriptor.

    Unpaired surrogates become U+FFFD and a trailing odd byte is dropped.
    Raises ValueError if the descriptor is malformed.
    """
    data = bytes(data)
    if not validate_string_descriptor(data):
        raise ValueError("invalid string descriptor")
    body = data[2:]
    body = body[: len(body) - len(body) % 2]
    return body.decode("utf-16-le", errors="replace")