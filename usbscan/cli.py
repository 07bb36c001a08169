"""Command line entry point: list devices and buses, or watch hotplug events."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Iterable, List, Optional, TextIO

from .hotplug import HotplugWatch
from .sysfs import SYSFS_USB_PREFIX, list_buses, list_devices


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="usbscan",
        description="Inspect the USB devices and buses known to the system.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="log debugging information to standard error",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    list_cmd = commands.add_parser("list", help="list connected devices")
    list_cmd.add_argument(
        "--root",
        default=SYSFS_USB_PREFIX,
        help="sysfs directory holding the USB devices (default: %(default)s)",
    )

    buses_cmd = commands.add_parser("buses", help="list system USB buses")
    buses_cmd.add_argument(
        "--root",
        default=SYSFS_USB_PREFIX,
        help="sysfs directory holding the USB devices (default: %(default)s)",
    )

    watch_cmd = commands.add_parser(
        "watch", help="print devices as they are connected or disconnected"
    )
    watch_cmd.add_argument(
        "--sys-root",
        default="/sys",
        help="sysfs mount point used to probe new devices (default: %(default)s)",
    )
    return parser


def _print_all(items: Iterable[object], out: TextIO) -> None:
    for item in items:
        print(repr(item), file=out, flush=True)


def _watch(sys_root: str, out: TextIO) -> None:
    with HotplugWatch(sys_root=sys_root) as watch:
        _print_all(watch, out)


def main(argv: Optional[List[str]] = None) -> int:
    """Run the command line tool and return its exit status."""
    args = _build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)
    out = sys.stdout

    try:
        if args.command == "list":
            _print_all(list_devices(args.root), out)
        elif args.command == "buses":
            _print_all(list_buses(args.root), out)
        else:
            _watch(args.sys_root, out)
    except KeyboardInterrupt:
        return 130
    except OSError as exc:
        print(f"usbscan: error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())