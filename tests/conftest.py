"""Shared fixtures: an in-memory player standing in for mpv."""
import copy
import pytest

from mpv_dynmenu.config import Options
from mpv_dynmenu.engine import MenuEngine
from mpv_dynmenu.errors import CommandError, PropertyNotFound
from mpv_dynmenu.host import Host

MENU_PROP = 'user-data/menu/items'


class FakeHost(Host):
    """Player with a dict of properties and recorded commands."""

    def __init__(self, properties=None, toplevel=('user-data',)):
        self.properties = dict(properties or {})
        self.toplevel = set(toplevel)
        self.observers = {}
        self.reads = {}
        self.published = []
        self.commands = []
        self.bindings = []
        self.config_dir = '/nonexistent'
        self.message_handler = None
        self.closed = False
        # clients a script-message-to cannot reach
        self.absent_clients = set()

    def client_name(self):
        return 'dyn_menu'

    def get_property(self, name):
        self.reads[name] = self.reads.get(name, 0) + 1
        if name not in self.properties:
            raise PropertyNotFound(name)
        return self.properties[name]

    def property_list(self):
        return sorted(self.toplevel | {name.split('/')[0] for name in self.properties})

    def observe_property(self, name, callback):
        self.observers.setdefault(name, []).append(callback)

    def set_property(self, name, value):
        self.properties[name] = value
        self.published.append((name, copy.deepcopy(value)))

    def command(self, *args):
        self.commands.append(args)
        if args[0] == 'script-message-to' and args[1] in self.absent_clients:
            raise CommandError("script-message-to failed: error running command")
        if args[0] == 'expand-path':
            return args[1].replace('~~', self.config_dir)
        return None

    def bind_key(self, key, *command):
        self.bindings.append((key,) + command)

    def run(self, engine):
        engine.tick()

    def close(self):
        self.closed = True

    def change(self, name, value):
        """Simulate mpv reporting a property change."""
        self.properties[name] = value
        for callback in self.observers.get(name, []):
            callback(name, value)

    def messages_to(self, target):
        return [c[2:] for c in self.commands if c[0] == 'script-message-to' and c[1] == target]

    def menu_publishes(self):
        return [value for name, value in self.published if name == MENU_PROP]


@pytest.fixture
def host():
    return FakeHost()


@pytest.fixture
def options():
    return Options()


@pytest.fixture
def engine(host, options):
    return MenuEngine(host, options)
