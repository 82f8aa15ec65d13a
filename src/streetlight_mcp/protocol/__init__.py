"""Protocol layer: hex framing, command builders, report parsing, leakage JSON."""

from .framing import Frame, build_frame, parse_frame, normalize_address
from .commands import Command
from .parser import parse_response
from .leakage import parse_leakage_report, normalize_leakage_address
