"""Script message handling: list/get/update and renderer lifecycle."""
import json
import logging

from .errors import CommandError, ProtocolError
from .menu import MenuItem

logger = logging.getLogger(__name__)


class ProtocolHandler:
    """Answers script messages sent by other clients.

    Messages arrive as argument lists, the first element being the message
    name, e.g. ``['get', 'chapters', 'uosc']``.
    """

    def __init__(self, engine):
        self.engine = engine
        self.host = engine.host
        self.handlers = {
            'list': self.on_list,
            'get': self.on_get,
            'update': self.on_update,
            'menu-init': self.on_menu_init,
            'uosc-version': self.on_uosc_version,
            'show': self.on_show,
        }

    def handle(self, args):
        """Dispatch one script message.

        Returns:
            True if the message was recognized.
        """
        if not args:
            return False
        handler = self.handlers.get(args[0])
        if handler is None:
            return False
        try:
            handler(*args[1:])
        except ProtocolError as e:
            logger.error(f"{args[0]}: {e}")
        except TypeError as e:
            logger.error(f"{args[0]}: bad arguments {args[1:]!r}: {e}")
        except CommandError as e:
            # the receiving client may have quit, or never loaded
            logger.warning(f"{args[0]}: reply not delivered: {e}")
        return True

    def on_list(self, src=None):
        if not src:
            logger.debug("list: ignored message with empty src")
            return
        reply = json.dumps(self.engine.keywords())
        self.host.script_message_to(src, 'menu-list-reply', reply)

    def on_get(self, keyword=None, src=None):
        if not src:
            logger.debug("get: ignored message with empty src")
            return
        bindings = self.engine.bindings_for(keyword)
        if not bindings:
            reply = {'keyword': keyword, 'error': 'keyword not found'}
            self.host.script_message_to(src, 'menu-get-reply', json.dumps(reply))
            raise ProtocolError(f"keyword not found: {keyword}")

        for binding in bindings:
            reply = {
                'keyword': keyword,
                'item': binding.item.to_dict(),
                'id': binding.index,
            }
            self.host.script_message_to(src, 'menu-get-reply', json.dumps(reply))

    def on_update(self, keyword=None, data=None, index=None):
        bindings = self.engine.bindings_for(keyword)
        if not bindings:
            raise ProtocolError(f"ignored message with invalid keyword: {keyword}")

        patch = parse_patch(data)
        validate_patch(patch)
        if index is None or index == '':
            targets = bindings
        else:
            try:
                pos = int(index)
            except ValueError:
                raise ProtocolError(f"ignored message with invalid id: {index}") from None
            if not 1 <= pos <= len(bindings):
                raise ProtocolError(f"id {pos} out of range for keyword {keyword}")
            targets = [bindings[pos - 1]]

        for binding in targets:
            apply_patch(binding.item, patch)
        self.engine.state.items_dirty = True

    def on_menu_init(self, name=None):
        if name:
            logger.debug(f"renderer client: {name}")
            self.engine.state.renderer = name

    def on_uosc_version(self, *args):
        self.engine.state.has_uosc = True

    def on_show(self, *args):
        self.host.script_message_to(self.engine.state.renderer, 'show')


def parse_patch(data):
    """Parse an update payload into a non-empty dict.

    Raises:
        ProtocolError: The payload is not a JSON object with at least one field.
    """
    try:
        patch = json.loads(data or '')
    except json.JSONDecodeError as e:
        raise ProtocolError(f"failed to parse json: {e}") from e
    if not isinstance(patch, dict) or not patch:
        raise ProtocolError(f"ignored message with invalid json: {data}")
    return patch


def validate_patch(patch):
    """Check that the patch builds a valid item before anything is touched.

    Raises:
        ProtocolError: A field has the wrong shape, e.g. a non-list submenu.
    """
    try:
        MenuItem.from_dict(patch)
    except (TypeError, ValueError, AttributeError) as e:
        raise ProtocolError(f"ignored message with invalid item: {e}") from e


def apply_patch(item, patch):
    """Replace all fields of ``item`` with ``patch``, keeping title and type
    when the patch leaves them out."""
    data = dict(patch)
    if not data.get('title'):
        data['title'] = item.title
    if not data.get('type'):
        data['type'] = item.type
    item.replace_fields(data)
