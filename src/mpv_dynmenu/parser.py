"""input.conf parsing into a menu tree."""
import logging
import re

from .errors import ParseWarning, PropertyNotFound, ResourceError
from .menu import MenuItem

logger = logging.getLogger(__name__)

_LINE_RE = re.compile(r'\s*(\S+)\s+(.*?)\s*$')
_PATH_SPLIT_RE = re.compile(r'\s*>\s*')
_TRAILING_COMMENT_RE = re.compile(r'(.*?)\s*#.*$')
_DIRECTIVE_END_RE = re.compile(r'\s+#(?:menu:|!|\s|$)')

MEMORY_PREFIX = 'memory://'
DEFAULT_INPUT_CONF = '~~/input.conf'

# keys that mean "no key bound"; no hint is shown for them
UNBOUND_KEYS = ('', '_')


def split_line(line):
    """Split a binding line into its key token and command.

    Raises:
        ParseWarning: The line has no command part.
    """
    match = _LINE_RE.match(line)
    if not match:
        raise ParseWarning(f"Not a key binding: {line!r}")
    return match.group(1), match.group(2)


def extract_title(cmd, alternate_syntax=False):
    """Get the menu title from a command's ``#menu:`` comment.

    Returns:
        The title text, or ``None`` when the command carries no title.
    """
    if not cmd:
        return None
    pos = cmd.find('#menu:')
    if pos >= 0:
        title = cmd[pos + len('#menu:'):]
    elif alternate_syntax and '#!' in cmd:
        title = cmd[cmd.find('#!') + 2:]
    else:
        return None

    match = _TRAILING_COMMENT_RE.match(title)
    if match:
        title = match.group(1)
    return title.strip()


def strip_annotations(cmd, alternate_syntax=False):
    """Return the command with its ``#menu:``/``#@`` annotations removed."""
    markers = ['#menu:', '#@']
    if alternate_syntax:
        markers.append('#!')
    positions = [cmd.find(m) for m in markers if m in cmd]
    if not positions:
        return cmd
    return cmd[:min(positions)].rstrip()


def parse_directive(cmd):
    """Get the ``#@keyword`` directive from a command, if any.

    The directive runs to the end of the line, up to a following
    ``#menu:`` title or a ``# comment``.

    Example:
        ``ignore #menu: Chapters #@chapters  # extra comment`` gives ``chapters``.
    """
    if not cmd:
        return None
    pos = cmd.find('#@')
    if pos < 0:
        return None
    directive = _DIRECTIVE_END_RE.split(cmd[pos + 2:], 1)[0].strip()
    return directive or None


def split_title(title):
    """Split ``A > B > C`` into its path segments."""
    segments = _PATH_SPLIT_RE.split(title)
    # "A >" names the submenu A itself, not an empty leaf below it
    if len(segments) > 1 and segments[-1] == '':
        segments.pop()
    return segments


def _is_separator(name, alternate_syntax):
    return name == '-' or (alternate_syntax and name.startswith('---'))


def parse_input_conf(conf, options):
    """Build the menu tree from input.conf text.

    Args:
        conf: Raw input.conf content.
        options: ``Options`` controlling the alternate syntax.

    Returns:
        List of top-level ``MenuItem``.
    """
    alternate = options.alternate_menu_syntax
    items = []
    submenus = {}

    for lineno, line in enumerate(conf.splitlines(), 1):
        if not line.strip():
            continue
        if line.startswith('#') and not alternate:
            continue

        try:
            key, cmd = split_line(line)
        except ParseWarning as e:
            logger.debug(f"input.conf:{lineno}: {e}")
            continue

        title = extract_title(cmd, alternate)
        if title is None:
            continue
        segments = split_title(title)

        target = items
        path = ()
        for name in segments[:-1]:
            path += (name,)
            submenu = submenus.get(path)
            if submenu is None:
                submenu = MenuItem(title=name)
                submenu.to_submenu()
                submenus[path] = submenu
                target.append(submenu)
            target = submenu.submenu

        name = segments[-1]
        if _is_separator(name, alternate):
            target.append(MenuItem.separator())
            continue
        # uosc marks unbound entries with a lone "#"
        if key in UNBOUND_KEYS or (alternate and key == '#'):
            label = name
        else:
            label = f"{name}\t{key}"
        item = MenuItem(title=label, cmd=strip_annotations(cmd, alternate))
        item.directive = parse_directive(cmd)
        target.append(item)

    return items


def read_input_conf(host, options):
    """Read the input.conf text the player is using.

    Raises:
        ResourceError: The file cannot be read.
    """
    source = options.input_conf
    if not source:
        try:
            source = host.get_property('input-conf') or ''
        except PropertyNotFound:
            source = ''
    if source.startswith(MEMORY_PREFIX):
        return source[len(MEMORY_PREFIX):]

    path = host.expand_path(source or DEFAULT_INPUT_CONF)
    try:
        with open(path, 'rb') as f:
            return f.read().decode('utf-8')
    except (OSError, UnicodeDecodeError) as e:
        raise ResourceError(f"failed to open file: {path} ({e})") from e
