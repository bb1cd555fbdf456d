"""Menu structure and node representation."""

NORMAL = 'normal'
SUBMENU = 'submenu'
SEPARATOR = 'separator'

_FIELDS = ('title', 'type', 'cmd', 'state', 'submenu')


class MenuItem:
    """Represents a single item in the menu tree."""
    def __init__(self, title='', type=NORMAL, cmd=None, state=None, submenu=None):
        self.title = title
        self.type = type
        self.cmd = cmd
        self.state = list(state) if state else []
        self.submenu = submenu
        self.extra = {}
        # "#@..." text from input.conf; not part of the published item
        self.directive = None

    @property
    def is_submenu(self):
        return self.type == SUBMENU

    @property
    def is_separator(self):
        return self.type == SEPARATOR

    @classmethod
    def separator(cls):
        return cls(title='', type=SEPARATOR)

    def to_submenu(self):
        """Turn this item into an empty submenu and return its children list."""
        self.type = SUBMENU
        self.cmd = None
        self.submenu = []
        return self.submenu

    def replace_fields(self, data):
        """Clear every field and take the ones present in ``data``.

        A ``None`` value counts as absent, and an empty ``state`` is the
        same as no state, so neither shows up again in ``to_dict``.

        Args:
            data: Mapping in wire form, as produced by ``to_dict``.

        Raises:
            TypeError: ``state`` or ``submenu`` is not a list.
        """
        self.title = ''
        self.type = NORMAL
        self.cmd = None
        self.state = []
        self.submenu = None
        self.extra = {}

        for key, value in data.items():
            if value is None:
                continue
            if key in ('submenu', 'state') and not isinstance(value, list):
                raise TypeError(f"{key} must be a list, not {type(value).__name__}")
            if key == 'submenu':
                self.submenu = [MenuItem.from_dict(child) for child in value]
            elif key == 'state':
                self.state = [str(s) for s in value]
            elif key in _FIELDS:
                setattr(self, key, value)
            else:
                self.extra[key] = value

    def to_dict(self):
        """Return a plain dict copy of this item, children included."""
        data = {'title': self.title, 'type': self.type}
        if self.cmd is not None:
            data['cmd'] = self.cmd
        if self.state:
            data['state'] = list(self.state)
        if self.submenu is not None:
            data['submenu'] = [child.to_dict() for child in self.submenu]
        for key, value in self.extra.items():
            data.setdefault(key, value)
        return data

    @classmethod
    def from_dict(cls, data):
        item = cls()
        item.replace_fields(data)
        return item

    def __eq__(self, other):
        if not isinstance(other, MenuItem):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self):
        return f"MenuItem(title={self.title!r}, type={self.type!r}, cmd={self.cmd!r})"


def tree_to_list(items):
    """Serialize a list of top-level items for publishing."""
    return [item.to_dict() for item in items]
