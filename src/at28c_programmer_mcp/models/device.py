"""Memory types supported by the programmer."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class DeviceType:
    """A supported memory chip.

    ``code`` is the numeric type the firmware expects in ``READBYTE``.
    ``page_size`` is set for chips the firmware can page-write.
    """

    name: str
    capacity: int
    code: int
    description: str = ""
    page_size: int | None = None

    def contains(self, address: int) -> bool:
        return 0 <= address < self.capacity

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "capacity": self.capacity,
            "code": self.code,
            "description": self.description,
            "page_size": self.page_size,
        }


AT28C64 = DeviceType("AT28C64", 8192, 0, "8K x 8 parallel EEPROM")
AT28C256 = DeviceType("AT28C256", 32768, 1, "32K x 8 parallel EEPROM", page_size=64)
E2764 = DeviceType("2764", 8192, 2, "8K x 8 UV EPROM")
E27128 = DeviceType("27128", 16384, 3, "16K x 8 UV EPROM")
E27256 = DeviceType("27256", 32768, 4, "32K x 8 UV EPROM")

DEVICE_TYPES: dict[str, DeviceType] = {
    d.name: d for d in (AT28C64, AT28C256, E2764, E27128, E27256)
}


def get_device_type(name: str) -> DeviceType:
    """Look up a device type by name (case-insensitive).

    Raises:
        ValueError: If the name is not in :data:`DEVICE_TYPES`.
    """
    device = DEVICE_TYPES.get(name.strip().upper())
    if device is None:
        raise ValueError(
            f"Unknown device type '{name}'. Valid: {list(DEVICE_TYPES)}"
        )
    return device
