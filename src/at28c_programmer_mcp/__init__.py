"""Host-side driver and MCP server for the AT28C EEPROM programmer."""

from .config import CapacityPolicy, SerialSettings, SessionConfig
from .errors import ConnectFailed, ImageTooLarge, NotConnected, TransferIncomplete
from .session import ConnectionState, Session

__version__ = "0.1.0"
