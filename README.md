# usbscan

Inspect the USB devices attached to a Linux machine without opening them.

`usbscan` reads device and bus information from sysfs, parses raw USB
descriptors (device, configuration, interface, endpoint and string), and
listens to the kernel's udev netlink broadcasts to report devices as they are
connected and disconnected.

No third-party packages are required. Device and bus listing read
`/sys/bus/usb/devices/`, and hotplug watching needs netlink sockets, so both
work on Linux only; descriptor parsing works anywhere.

## Installation

```
pip install usbscan
```

## Command line

The package installs a `usbscan` command with three subcommands:

```
usbscan list [--root DIR]        # print every connected device
usbscan buses [--root DIR]       # print every USB bus and its controller type
usbscan watch [--sys-root DIR]   # print devices as they come and go
```

`--root` is the sysfs directory holding the USB devices (default
`/sys/bus/usb/devices/`); `--sys-root` is the sysfs mount point used to probe
newly connected devices (default `/sys`). `-v` / `--verbose` before the
subcommand turns on debug logging. The command exits with status 1 and a
message on standard error when the system refuses, for example when sysfs
cannot be listed or the netlink socket cannot be opened, and with 130 when
interrupted.

## Library use

### Listing devices and buses

```python
from usbscan.sysfs import list_devices, list_buses

for device in list_devices():
    print(device.bus_id, device.device_address,
          hex(device.vendor_id), hex(device.product_id),
          device.product_string, device.speed)

for bus in list_buses():
    print(bus.bus_id, bus.system_name(), bus.controller_type, bus.driver)
```

`list_devices`, `list_root_hubs` and `list_buses` take an optional `root`
directory. Devices whose attributes cannot be read are skipped with a logged
warning. Root hubs are not listed as devices; they are reached through
`list_root_hubs` or `BusInfo.root_hub`.

`usbscan.sysfs.probe_device` reads a single device directory and raises
`usbscan.sysfs.SysfsError` (an `OSError`) when a required attribute is missing
or malformed.

The results are the frozen dataclasses of `usbscan.enumeration`: `DeviceInfo`
(with its `InterfaceInfo` entries and `id()` giving a `DeviceId`) and
`BusInfo`. `Speed` and `UsbControllerType` are enums; `Speed` values are
ordered from slowest to fastest.

### Parsing descriptors

```python
from usbscan.descriptors import DeviceDescriptor
from usbscan.configuration import ConfigurationDescriptor

device = DeviceDescriptor.from_bytes(raw_device_descriptor)
print(hex(device.vendor_id), hex(device.product_id))

config = ConfigurationDescriptor.from_bytes(raw_configuration_descriptor)
for interface in config.interfaces():
    for alt in interface.alt_settings():
        for endpoint in alt.endpoints():
            print(
                interface.interface_number,
                alt.alternate_setting,
                hex(endpoint.address),
                endpoint.direction,
                endpoint.transfer_type,
                endpoint.max_packet_size,
            )
```

`from_bytes` raises `ValueError` for a buffer that does not hold a valid
descriptor. `DeviceDescriptor.from_fields` builds one from field values.
Every descriptor class offers `as_bytes()`, and the configuration, interface
and endpoint classes offer `descriptors()` to walk the raw descriptors that
follow them as `Descriptor` objects.

A buffer holding several configuration descriptors back to back is split with
`usbscan.configuration.parse_concatenated_config_descriptors`, which stops at
the first invalid one. String descriptors are checked with
`usbscan.descriptors.validate_string_descriptor` and decoded from UTF-16 with
`usbscan.descriptors.decode_string_descriptor`.

Malformed data is handled leniently: an entry with an impossible length ends
the walk, and interface or endpoint descriptors shorter than their minimum
length are skipped with a logged warning.

### Watching for hotplug events

```python
from usbscan.hotplug import Connected, Disconnected, watch_devices

with watch_devices() as watch:
    for event in watch:
        if isinstance(event, Connected):
            print("connected", event.device)
        elif isinstance(event, Disconnected):
            print("disconnected", event.device_id)
```

`watch_devices()` returns a `HotplugWatch`, a blocking iterator that can also
be closed with `close()` and passed to `select` through `fileno()`. Only
messages sent to the udev multicast group are accepted. Start the watch
before listing devices so that no device attached in between is missed.
`usbscan.hotplug.parse_packet` turns one raw udev message into an event, or
`None` if it does not describe a USB device being added or removed.

`usbscan.hotplug.errno_to_transfer_error` maps an OS error number to a
`TransferError` category (cancelled, stall, disconnected, fault, unknown).

## What it does not do

`usbscan` only describes devices. It does not open devices, claim interfaces,
select configurations or alternate settings, detach kernel drivers, or
perform control, bulk, interrupt or isochronous transfers.

## Logging

Warnings about unreadable devices and malformed descriptors go to the
standard `logging` module under the `usbscan` logger hierarchy.