[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "usbscan"
version = "0.1.0"
description = "List USB devices and buses from sysfs, parse USB descriptors and watch udev hotplug events on Linux"
requires-python = ">=3.10"
dependencies = []
keywords = ["usb", "descriptors", "sysfs", "hotplug", "udev", "enumeration"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Hardware :: Universal Serial Bus (USB)",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
usbscan = "usbscan.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["usbscan"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
