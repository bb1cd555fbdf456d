"""Dynamic menu bindings and the idle-time refresh/commit cycle."""
import logging

from .builders import UPDATERS
from .errors import CommandError, ExpressionRuntimeError, HostError
from .expr import compile_expr, state_flags
from .menu import tree_to_list
from .properties import PropertyCache

logger = logging.getLogger(__name__)

STATE_PREFIX = 'state='


class EngineState:
    """Everything the engine owns: the tree, bindings and dirty flags."""

    def __init__(self, options):
        self.options = options
        self.items = []
        self.bindings = []
        self.by_keyword = {}
        # at least one binding is marked dirty
        self.has_dirty = False
        # the tree changed since it was last published
        self.items_dirty = False
        self.renderer = options.renderer
        self.has_uosc = False


class DynamicMenuBinding:
    """Ties a menu item to the builder or state expression that keeps it current."""

    def __init__(self, item, keyword, index):
        self.item = item
        self.keyword = keyword
        # 1-based position among the bindings sharing this keyword
        self.index = index
        self.updater = None
        self.state_expr = None
        self.dirty = False

    def __repr__(self):
        return f"DynamicMenuBinding({self.keyword!r}, index={self.index}, dirty={self.dirty})"


def update_menu_state(engine, binding):
    """Updater for ``#@state=<expr>`` bindings."""
    try:
        result = binding.state_expr.evaluate(engine.props, binding)
    except ExpressionRuntimeError as e:
        logger.debug(f"state expr error on evaluating {binding.state_expr.name}: {e}")
        return

    state = state_flags(result)
    if state != binding.item.state:
        binding.item.state = state
        engine.state.items_dirty = True


class MenuEngine:
    """Keeps the menu tree in sync with the player and publishes it.

    Property changes only mark bindings dirty. The actual rebuild happens in
    ``tick``, which the host calls once it has no more events queued, so any
    number of changes between two ticks costs one rebuild and one publish.
    """

    def __init__(self, host, options):
        self.host = host
        self.options = options
        self.state = EngineState(options)
        self.props = PropertyCache(host, self.state)
        self._in_tick = False

    def reader(self, binding):
        """Return ``get(name, default=None)`` recording reads for ``binding``."""
        def get(name, default=None):
            return self.props.get(name, default, binding)
        return get

    def to_submenu(self, item):
        self.state.items_dirty = True
        return item.to_submenu()

    def load(self, items):
        """Take over a freshly parsed tree and bind its directives."""
        self.state.items = items
        self.state.items_dirty = True
        self._scan(items)
        self.host.broadcast('menu-ready', self.host.client_name())

    def _scan(self, items):
        for item in items:
            if item.is_submenu:
                self._scan(item.submenu or [])
            elif not item.is_separator and item.directive:
                logger.debug(f"load menu: {item.title}, keyword: {item.directive}")
                self.bind(item, item.directive)

    def bind(self, item, keyword):
        """Create a binding for ``item`` and evaluate it once."""
        group = self.state.by_keyword.setdefault(keyword, [])
        binding = DynamicMenuBinding(item, keyword, len(group) + 1)
        group.append(binding)
        self.state.bindings.append(binding)

        if keyword.startswith(STATE_PREFIX):
            expr = keyword[len(STATE_PREFIX):].strip()
            binding.updater = update_menu_state
            binding.state_expr = compile_expr(f"[{item.title}]:{keyword}", expr)
        else:
            name = keyword.split()[0]
            binding.updater = UPDATERS.get(name)
            if binding.updater is None:
                logger.debug(f"no updater for keyword: {name}")

        self.refresh(binding)
        return binding

    def refresh(self, binding):
        """Re-run a binding's updater; failures are logged, a lost connection is raised."""
        if binding.updater is None:
            return
        logger.debug(f"update menu: {binding.item.title}")
        self.props.begin(binding)
        try:
            binding.updater(self, binding)
        except Exception as e:
            if isinstance(e, HostError) and not isinstance(e, CommandError):
                raise
            logger.error(f"Failed to update menu {binding.item.title!r} ({binding.keyword}): {e}")

    def tick(self):
        """Settle point: refresh dirty bindings, then publish the tree once.

        Returns:
            True if the tree was published.
        """
        if self._in_tick:
            return False
        self._in_tick = True
        try:
            if self.state.has_dirty:
                # changes made while refreshing are picked up next tick
                self.state.has_dirty = False
                for binding in self.state.bindings:
                    if binding.dirty:
                        binding.dirty = False
                        self.refresh(binding)

            if self.state.items_dirty:
                self.publish()
                return True
            return False
        finally:
            self._in_tick = False

    def publish(self):
        logger.debug(f"commit menu items: {self.options.menu_property}")
        self.state.items_dirty = False
        self.host.set_property(self.options.menu_property, tree_to_list(self.state.items))

    def keywords(self):
        return list(self.state.by_keyword)

    def bindings_for(self, keyword):
        return self.state.by_keyword.get(keyword)

    def shutdown(self):
        self.state.items = []
        self.state.bindings = []
        self.state.by_keyword = {}
        self.state.has_dirty = False
        self.state.items_dirty = False
