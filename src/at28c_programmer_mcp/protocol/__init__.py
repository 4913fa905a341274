"""Protocol layer: command line builders and response line parsing."""

from .commands import Command, Verb, build_command
from .parser import LineAssembler, ResponseLine, parse_line
