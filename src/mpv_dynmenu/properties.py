"""Cached property access with per-binding dependency tracking."""
import logging

from .errors import PropertyNotFound

logger = logging.getLogger(__name__)


class PropertyCache:
    """Reads player properties once, then serves them from a cache kept
    up to date by change notifications.

    Reads made on behalf of a binding are recorded, so that a later change
    to one of those properties marks exactly the bindings that used it as
    dirty.
    """

    def __init__(self, host, state):
        """
        Args:
            host: ``Host`` used to read and observe properties.
            state: ``EngineState`` whose ``has_dirty`` flag is raised on change.
        """
        self.host = host
        self.state = state
        self.values = {}
        self._watched = set()
        # names the player does not know; reported once, then served as default
        self._missing = set()
        self._known_toplevel = None
        # property name -> bindings that read it during their last refresh
        self._dependents = {}
        # binding -> property names it read during its last refresh
        self._reads = {}

    def _toplevel_exists(self, name):
        if self._known_toplevel is None:
            self._known_toplevel = set(self.host.property_list())
        return name.split('/', 1)[0] in self._known_toplevel

    def _watch(self, name):
        try:
            value = self.host.get_property(name)
        except PropertyNotFound:
            # user-data/foo and similar may appear later, keep watching those
            if not self._toplevel_exists(name):
                logger.error(f"Property '{name}' was not found.")
                self._missing.add(name)
                return False
            value = None
        self._watched.add(name)
        self.values[name] = value
        self.host.observe_property(name, self.on_change)
        return True

    def get(self, name, default=None, binding=None):
        """Return the cached value of a property.

        Args:
            name: Property name, e.g. ``track-list`` or ``user-data/foo``.
            default: Returned when the property has no value.
            binding: ``DynamicMenuBinding`` the read is made for, if any.
        """
        if name in self._missing:
            return default
        if name not in self._watched and not self._watch(name):
            return default

        if binding is not None:
            self._dependents.setdefault(name, set()).add(binding)
            self._reads.setdefault(binding, set()).add(name)

        value = self.values.get(name)
        return default if value is None else value

    def begin(self, binding):
        """Forget what ``binding`` read last time, before it is refreshed."""
        for name in self._reads.pop(binding, ()):
            dependents = self._dependents.get(name)
            if dependents:
                dependents.discard(binding)

    def dependencies(self, binding):
        return frozenset(self._reads.get(binding, ()))

    def on_change(self, name, value):
        # observing a property reports its current value once; nothing changed
        if name in self.values and self.values[name] == value:
            return
        self.values[name] = value
        for binding in self._dependents.get(name, ()):
            binding.dirty = True
            self.state.has_dirty = True
