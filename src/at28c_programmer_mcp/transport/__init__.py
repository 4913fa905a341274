"""Serial transport to the programmer board."""

from .serial_connection import PortInfo, SerialTransport, Transport, list_ports
