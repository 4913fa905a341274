"""MCP server entry point for the AT28C EEPROM programmer.

Exposes tools, resources, and prompts via the Model Context Protocol
using the official Python MCP SDK with stdio transport.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from mcp.server.fastmcp import FastMCP

from .config import DEFAULT_BAUDRATE, PAGE_SIZE, SerialSettings, SessionConfig
from .errors import NotConnected
from .models.device import DEVICE_TYPES, get_device_type
from .models.image import load_image, save_image
from .models.transfer import LoggingProgress
from .protocol.parser import MIN_FIRMWARE, firmware_supported
from .session import Session
from .transport.serial_connection import list_ports

logger = logging.getLogger(__name__)

mcp = FastMCP(
    "at28c-programmer",
    instructions="MCP server for the AT28C parallel EEPROM programmer",
)

# Global session state
_session: Session | None = None
_firmware: str = ""


def _get_session() -> Session:
    """Get the active session, raising if not connected."""
    if _session is None or not _session.connected:
        raise NotConnected()
    return _session


# ─── CONNECTION TOOLS ─────────────────────────────────────────────────

@mcp.tool()
def list_serial_ports() -> dict[str, Any]:
    """List serial ports the programmer might be attached to."""
    ports = [
        {"device": p.device, "description": p.description, "hwid": p.hwid}
        for p in list_ports()
    ]
    return {"ports": ports}


@mcp.tool()
def connect(port: str, baudrate: int = DEFAULT_BAUDRATE) -> dict[str, Any]:
    """Open the programmer's serial port and confirm its firmware.

    Waits for the board to boot after the port opens, then sends
    VERSION=? and expects a +VERSION reply. The port is closed again if
    nothing answers.

    Args:
        port: Serial device, e.g. /dev/ttyUSB0 or COM5.
        baudrate: Line speed (the firmware uses 115200).
    """
    global _session, _firmware
    if _session is not None and _session.connected:
        return {
            "connected": True,
            "message": "Already connected",
            "port": _session.config.serial.port,
            "firmware": _firmware,
        }

    session = Session(
        config=SessionConfig(serial=SerialSettings(port=port, baudrate=baudrate))
    )
    if not session.connect():
        return {"error": f"Could not open {port}"}

    session.wait_for_device()
    firmware = session.identify()
    if not firmware:
        session.disconnect()
        return {"error": f"No programmer answered on {port}"}

    _session = session
    _firmware = firmware

    result: dict[str, Any] = {
        "connected": True,
        "port": port,
        "firmware": firmware,
    }
    if not firmware_supported(firmware):
        result["warning"] = (
            "Firmware older than %d.%03d; please update the programmer" % MIN_FIRMWARE
        )
    return result


@mcp.tool()
def disconnect() -> dict[str, bool]:
    """Close the serial connection to the programmer."""
    global _session, _firmware
    if _session is None:
        return {"disconnected": True}
    closed = _session.disconnect()
    if closed:
        _session = None
        _firmware = ""
    return {"disconnected": closed}


@mcp.tool()
def get_firmware_version() -> dict[str, Any]:
    """Query the programmer firmware version (VERSION=?)."""
    global _firmware
    session = _get_session()
    firmware = session.identify()
    if not firmware:
        return {"error": "No response from device"}
    _firmware = firmware
    return {"firmware": firmware, "supported": firmware_supported(firmware)}


# ─── MEMORY TOOLS ────────────────────────────────────────────────────

@mcp.tool()
def list_device_types() -> dict[str, Any]:
    """List the memory chips the programmer supports and their sizes."""
    return {"device_types": [d.to_dict() for d in DEVICE_TYPES.values()]}


@mcp.tool()
def read_eeprom(device_type: str, output_path: str) -> dict[str, Any]:
    """Dump the whole chip to a raw binary file.

    Args:
        device_type: Chip type (AT28C64, AT28C256, 2764, 27128, 27256).
        output_path: Destination .bin file.
    """
    try:
        device = get_device_type(device_type)
    except ValueError as e:
        return {"error": str(e)}

    session = _get_session()
    result = session.bulk_read(
        device.capacity, progress=LoggingProgress(f"Read {device.name}")
    )
    if not result.complete:
        return {"error": f"Read {result.status.value}", **result.to_dict()}

    path = save_image(result.data, output_path)
    return {"path": str(path), "device_type": device.name, **result.to_dict()}


@mcp.tool()
def write_eeprom(
    input_path: str,
    device_type: str | None = None,
    paged: bool = False,
) -> dict[str, Any]:
    """Send a raw binary file to the programmer's buffer for burning.

    The whole file is sent; its length sets the transfer size.

    Args:
        input_path: Source .bin file.
        device_type: Optional chip type, used to check the file fits.
        paged: Send 64-byte pages instead of single bytes (AT28C256 only).
            The file length must be a multiple of the page size.
    """
    if not Path(input_path).exists():
        return {"error": f"File not found: {input_path}"}

    try:
        device = get_device_type(device_type) if device_type else None
        image = load_image(input_path)
    except ValueError as e:
        return {"error": str(e)}

    page_size = None
    if paged:
        page_size = device.page_size if device and device.page_size else PAGE_SIZE

    session = _get_session()
    try:
        result = session.bulk_write(
            image,
            progress=LoggingProgress("Write"),
            device_type=device,
            page_size=page_size,
        )
    except ValueError as e:
        return {"error": str(e)}

    if not result.complete:
        return {"error": f"Write {result.status.value}", **result.to_dict()}
    return {"written": True, "path": input_path, **result.to_dict()}


@mcp.tool()
def verify_eeprom(input_path: str) -> dict[str, Any]:
    """Compare the chip contents against a raw binary file.

    Args:
        input_path: Reference .bin file; its length sets how much is read.
    """
    if not Path(input_path).exists():
        return {"error": f"File not found: {input_path}"}

    try:
        image = load_image(input_path)
    except ValueError as e:
        return {"error": str(e)}

    session = _get_session()
    report = session.verify(image, progress=LoggingProgress("Verify"))
    return report.to_dict()


@mcp.tool()
def blank_check(device_type: str) -> dict[str, Any]:
    """Check that every byte of the chip reads as 0xFF.

    Args:
        device_type: Chip type (AT28C64, AT28C256, 2764, 27128, 27256).
    """
    try:
        device = get_device_type(device_type)
    except ValueError as e:
        return {"error": str(e)}

    session = _get_session()
    report = session.blank_check(
        device.capacity, progress=LoggingProgress("Blank check")
    )
    result = report.to_dict()
    result["device_type"] = device.name
    return result


@mcp.tool()
def set_write_protection(enabled: bool) -> dict[str, Any]:
    """Enable or disable the AT28C software data protection.

    Args:
        enabled: True to enable, False to disable.
    """
    session = _get_session()
    if not session.set_write_protection(enabled):
        return {"error": "Failed to send command"}
    return {"write_protection": enabled}


@mcp.tool()
def read_byte(device_type: str, address: int) -> dict[str, Any]:
    """Read a single byte from the chip.

    Args:
        device_type: Chip type.
        address: Byte address within the chip.
    """
    try:
        device = get_device_type(device_type)
    except ValueError as e:
        return {"error": str(e)}

    session = _get_session()
    try:
        value = session.read_byte(device, address)
    except ValueError as e:
        return {"error": str(e)}

    if value is None:
        return {"error": "No response from device"}
    return {"address": address, "value": value, "hex": f"0x{value:02X}"}


@mcp.tool()
def write_byte(
    address: int,
    value: int,
    device_type: str | None = None,
) -> dict[str, Any]:
    """Write a single byte and report what the chip holds afterwards.

    Args:
        address: Byte address within the chip.
        value: Byte value (0-255).
        device_type: Optional chip type, used to check the address.
    """
    try:
        device = get_device_type(device_type) if device_type else None
    except ValueError as e:
        return {"error": str(e)}

    session = _get_session()
    try:
        readback = session.write_byte(address, value, device)
    except ValueError as e:
        return {"error": str(e)}

    if readback is None:
        return {"error": "No response from device"}
    return {
        "address": address,
        "value": value,
        "readback": readback,
        "verified": readback == value,
    }


# ─── MCP RESOURCES ───────────────────────────────────────────────────

@mcp.resource("at28c://device/status")
def resource_device_status() -> str:
    """Connection state, port and firmware version."""
    if _session is None:
        return json.dumps({"connected": False, "state": "disconnected"})
    return json.dumps({
        "connected": _session.connected,
        "state": _session.state.value,
        "transfer_pending": _session.transfer_pending,
        "port": _session.config.serial.port,
        "firmware": _firmware,
    })


@mcp.resource("at28c://catalog/device-types")
def resource_device_types() -> str:
    """Supported memory chips with capacities."""
    types = [d.to_dict() for d in DEVICE_TYPES.values()]
    return json.dumps({"device_types": types, "count": len(types)})


# ─── MCP PROMPTS ─────────────────────────────────────────────────────

@mcp.prompt()
def clone_eeprom(device_type: str, backup_path: str) -> str:
    """Guide the AI through backing up a chip, then programming a blank one.

    Args:
        device_type: Chip type of both source and target.
        backup_path: Where to keep the dump.
    """
    return f"""Clone a {device_type} chip.
Steps:
- Use read_eeprom to dump the source chip to {backup_path}
- Ask the user to swap in the target chip
- Use blank_check, and if it is not blank, confirm before continuing
- Use set_write_protection(false) if the target has data protection enabled
- Use write_eeprom with {backup_path}
- Use verify_eeprom with {backup_path} and report any mismatches"""


# ─── ENTRY POINT ─────────────────────────────────────────────────────

def main():
    """Run the MCP server with stdio transport."""
    logging.basicConfig(level=logging.INFO)
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
