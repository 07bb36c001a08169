import pytest

from usbscan.descriptors import (
    DESCRIPTOR_TYPE_ENDPOINT,
    DESCRIPTOR_TYPE_INTERFACE,
    Descriptor,
    DescriptorIter,
    DeviceDescriptor,
    Direction,
    TransferType,
    decode_string_descriptor,
    validate_string_descriptor,
)

ROOT_HUB = bytes([
    0x12, 0x01, 0x00, 0x02, 0x09, 0x00, 0x01, 0x40, 0x6B,
    0x1D, 0x02, 0x00, 0x10, 0x05, 0x03, 0x02, 0x01, 0x01,
])

INTERFACE_A = bytes([0x09, 0x04, 0x00, 0x00, 0x01, 0xFF, 0x00, 0x00, 0x00])
ENDPOINT = bytes([0x07, 0x05, 0x81, 0x02, 0x40, 0x00, 0x00])
INTERFACE_B = bytes([0x09, 0x04, 0x01, 0x00, 0x00, 0xFF, 0x00, 0x00, 0x00])


def test_linux_root_hub():
    dev = DeviceDescriptor.from_bytes(ROOT_HUB)
    assert dev.usb_version == 0x0200
    assert dev.device_class == 0x09
    assert dev.subclass == 0x00
    assert dev.protocol == 0x01
    assert dev.max_packet_size_0 == 64
    assert dev.vendor_id == 0x1D6B
    assert dev.product_id == 0x0002
    assert dev.device_version == 0x0510
    assert dev.manufacturer_string_index == 3
    assert dev.product_string_index == 2
    assert dev.serial_number_string_index == 1
    assert dev.num_configurations == 1


def test_device_descriptor_ignores_trailing_data():
    dev = DeviceDescriptor.from_bytes(ROOT_HUB + b"\x09\x02\x00")
    assert dev.as_bytes() == ROOT_HUB


def test_from_fields_matches_raw_bytes():
    dev = DeviceDescriptor.from_fields(
        0x0200, 0x09, 0x00, 0x01, 64, 0x1D6B, 0x0002, 0x0510, 3, 2, 1, 1
    )
    assert dev.as_bytes() == ROOT_HUB
    assert DeviceDescriptor.from_bytes(dev.as_bytes()) == dev


def test_missing_string_indexes_are_none():
    dev = DeviceDescriptor.from_fields(0x0110, 0, 0, 0, 8, 1, 2, 3, 0, 0, 0, 1)
    assert dev.manufacturer_string_index is None
    assert dev.product_string_index is None
    assert dev.serial_number_string_index is None


@pytest.mark.parametrize(
    "buf",
    [
        b"",
        ROOT_HUB[:17],
        bytes([0x11]) + ROOT_HUB[1:],
        ROOT_HUB[:1] + bytes([0x02]) + ROOT_HUB[2:],
    ],
)
def test_invalid_device_descriptor(buf):
    with pytest.raises(ValueError):
        DeviceDescriptor.from_bytes(buf)


def test_device_descriptor_repr_uses_hex():
    text = repr(DeviceDescriptor.from_bytes(ROOT_HUB))
    assert "vendor_id=0x1D6B" in text
    assert "usb_version=0x0200" in text


def test_direction_from_address():
    assert Direction.from_address(0x81) is Direction.IN
    assert Direction.from_address(0x02) is Direction.OUT


def test_transfer_type_values():
    assert TransferType(3) is TransferType.INTERRUPT
    assert TransferType(1) is TransferType.ISOCHRONOUS


def test_descriptor_fields():
    d = Descriptor(bytes([3, 0x24, 1, 9]))
    assert d.descriptor_len == 3
    assert d.descriptor_type == 0x24
    assert d.as_bytes() == bytes([3, 0x24, 1, 9])
    assert d[2] == 1


@pytest.mark.parametrize("buf", [b"", b"\x01", bytes([5, 0x24, 1])])
def test_descriptor_rejects_short_buffer(buf):
    with pytest.raises(ValueError):
        Descriptor(buf)


def test_descriptor_iter_yields_each():
    it = DescriptorIter(INTERFACE_A + ENDPOINT)
    items = list(it)
    assert [d.descriptor_type for d in items] == [DESCRIPTOR_TYPE_INTERFACE, DESCRIPTOR_TYPE_ENDPOINT]
    assert [d.as_bytes() for d in items] == [INTERFACE_A, ENDPOINT]
    assert it.as_bytes() == b""


def test_descriptor_iter_stops_on_zero_length():
    it = DescriptorIter(bytes([3, 0x24, 1, 0, 5, 6, 7]))
    assert next(it).as_bytes() == bytes([3, 0x24, 1])
    with pytest.raises(StopIteration):
        next(it)
    assert it.as_bytes() == bytes([0, 5, 6, 7])


def test_descriptor_iter_stops_on_overlong():
    it = DescriptorIter(bytes([9, 4, 0, 0]))
    assert list(it) == []


def test_split_by_type_groups_trailing():
    it = DescriptorIter(INTERFACE_A + ENDPOINT + INTERFACE_B)
    groups = list(it.split_by_type(DESCRIPTOR_TYPE_INTERFACE, 9))
    assert groups == [INTERFACE_A + ENDPOINT, INTERFACE_B]
    assert it.as_bytes() == INTERFACE_A + ENDPOINT + INTERFACE_B


def test_split_by_type_skips_leading_and_short():
    short_intf = bytes([5, 4, 0, 0, 0])
    leading = bytes([3, 0x24, 1])
    it = DescriptorIter(leading + short_intf + INTERFACE_B)
    assert list(it.split_by_type(DESCRIPTOR_TYPE_INTERFACE, 9)) == [INTERFACE_B]


def test_split_by_type_none_found():
    it = DescriptorIter(ENDPOINT)
    assert list(it.split_by_type(DESCRIPTOR_TYPE_INTERFACE, 9)) == []


def test_validate_string_descriptor():
    assert validate_string_descriptor(bytes([4, 3, 0x41, 0]))
    assert not validate_string_descriptor(bytes([6, 3, 0x41, 0]))
    assert not validate_string_descriptor(bytes([4, 2, 0x41, 0]))
    assert not validate_string_descriptor(b"\x01")


def test_decode_string_descriptor():
    assert decode_string_descriptor(bytes([6, 3, 0x41, 0, 0x42, 0])) == "AB"
    assert decode_string_descriptor(bytes([2, 3])) == ""


def test_decode_drops_odd_byte():
    assert decode_string_descriptor(bytes([5, 3, 0x41, 0, 0x42])) == "A"


def test_decode_replaces_lone_surrogate():
    assert decode_string_descriptor(bytes([6, 3, 0x00, 0xD8, 0x41, 0x00])) == "\ufffdA"


def test_decode_invalid_raises():
    with pytest.raises(ValueError):
        decode_string_descriptor(bytes([8, 3, 0x41, 0]))