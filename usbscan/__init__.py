"""List USB devices and buses from sysfs, parse USB descriptors and watch hotplug events."""

__version__ = "0.1.0"

__all__ = ["cli", "configuration", "descriptors", "enumeration", "hotplug", "sysfs"]