"""mpv-dynmenu - A dynamic context menu for mpv, built from input.conf."""

from .main import MenuApp, main
from .menu import MenuItem
from .config import Options, load_options
from .engine import MenuEngine, EngineState, DynamicMenuBinding
from .parser import parse_input_conf
from .protocol import ProtocolHandler
from .ipc import MpvIpcHost

__all__ = [
    'MenuApp', 'main', 'MenuItem', 'Options', 'load_options', 'MenuEngine',
    'EngineState', 'DynamicMenuBinding', 'parse_input_conf', 'ProtocolHandler', 'MpvIpcHost',
]
