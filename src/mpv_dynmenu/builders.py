"""Submenu builders for the ``#@keyword`` directives.

Every builder takes the engine and the binding being refreshed, turns the
bound item into a submenu and fills it from the current player state. The
children list is rebuilt from scratch on every call.
"""
import posixpath
import re

from .menu import MenuItem


ELLIPSIS = '...'

# (codec name fragment, short name)
CODEC_NAMES = (
    ('mpeg2', 'mpeg2'),
    ('dvvideo', 'dv'),
    ('pcm', 'pcm'),
    ('pgs', 'pgs'),
    ('subrip', 'srt'),
    ('vtt', 'vtt'),
    ('dvd_sub', 'vob'),
    ('dvb_sub', 'dvb'),
    ('dvb_tele', 'teletext'),
    ('arib', 'arib'),
)

EXCLUDED_PROFILES = ('default', 'encoding', 'libmpv')

_EXT_RE = re.compile(r'^(.+)\.([\w\-]+)$')


def abbr_title(text, limit):
    """Shorten ``text`` to ``limit`` characters plus an ellipsis.

    Args:
        text: Title to shorten, may be ``None``.
        limit: Maximum number of characters, 0 disables shortening.
    """
    if not text:
        return ''
    if limit > 0 and len(text) > limit:
        return text[:limit] + ELLIPSIS
    return text


def escape_codec(codec):
    """Map a codec name to the short name users know it by."""
    if not codec:
        return ''
    for fragment, short in CODEC_NAMES:
        if fragment in codec:
            return short
    return codec


def _fmt_g(value):
    # lua "%.3g"
    return '%.3g' % value


def build_track_title(track, prefix, filename, limit):
    """Build a track title from its metadata.

    Example::

        V: Video 1 [h264, 1920x1080, 23.976 fps] (*)\tJPN
        |     |               |                  |     |
       type  title          hints             default lang
    """
    track_type = track.get('type') or ''
    title = track.get('title') or ''
    lang = track.get('lang') or ''
    codec = escape_codec(track.get('codec'))

    # external tracks are usually titled after the file they came from
    if track.get('external') and title:
        if filename:
            title = re.sub(re.escape(filename) + r'\.?', '', title)
        if title.lower() == codec.lower():
            title = ''

    if not title:
        title = f"{track_type.capitalize()} {track.get('id')}"
    else:
        title = abbr_title(title, limit)

    hints = []
    if codec:
        hints.append(codec)
    if track.get('demux-h'):
        if track.get('demux-w'):
            hints.append(f"{track['demux-w']}x{track['demux-h']}")
        else:
            hints.append(f"{track['demux-h']}p")
    if track.get('demux-fps'):
        hints.append(f"{_fmt_g(track['demux-fps'])} fps")
    if track.get('audio-channels'):
        hints.append(f"{track['audio-channels']} ch")
    if track.get('demux-samplerate'):
        hints.append(f"{_fmt_g(track['demux-samplerate'] / 1000)} kHz")
    if track.get('demux-bitrate'):
        hints.append(f"{_fmt_g(track['demux-bitrate'] / 1000)} kbps")
    if hints:
        title = f"{title} [{', '.join(hints)}]"

    if track.get('forced'):
        title += ' (forced)'
    if track.get('external'):
        title += ' (external)'
    if track.get('default'):
        title += ' (*)'

    if lang:
        title = f"{title}\t{lang.upper()}"
    if prefix:
        title = f"{track_type[:1].upper()}: {title}"
    return title


def _as_int(value, fallback):
    if isinstance(value, bool):
        return fallback
    try:
        return int(value)
    except (TypeError, ValueError):
        return fallback


def build_track_items(engine, binding, track_list, track_type, prop, prefix):
    """Items for every track of one type, plus an Off/Auto toggle."""
    get = engine.reader(binding)
    filename = get('filename/no-ext', '')
    pos = _as_int(get(prop), -1)
    limit = engine.options.max_title_length

    items = []
    for track in track_list:
        if track.get('type') != track_type:
            continue
        state = []
        # subtitles can have a primary and a secondary selection
        if track.get('selected'):
            state.append('checked')
            if track.get('id') != pos:
                state.append('disabled')
        items.append(MenuItem(
            title=build_track_title(track, prefix, filename, limit),
            cmd=f"set {prop} {track.get('id')}",
            state=state,
        ))

    if items:
        title = 'Off' if pos > 0 else 'Auto'
        value = 'no' if pos > 0 else 'auto'
        if prefix:
            title = f"{track_type[:1].upper()}: {title}"
        items.append(MenuItem(title=title, cmd=f"set {prop} {value}"))
    return items


def update_tracks_menu(engine, binding):
    """``#@tracks``: video, audio and subtitle tracks in one submenu."""
    submenu = engine.to_submenu(binding.item)
    track_list = engine.reader(binding)('track-list', [])
    if not track_list:
        return

    groups = [
        build_track_items(engine, binding, track_list, 'video', 'vid', True),
        build_track_items(engine, binding, track_list, 'audio', 'aid', True),
        build_track_items(engine, binding, track_list, 'sub', 'sid', True),
    ]
    for group in groups:
        if submenu and group:
            submenu.append(MenuItem.separator())
        submenu.extend(group)


def track_menu_updater(track_type, prop):
    """``#@tracks/<type>``: tracks of a single type."""
    def update_track_menu(engine, binding):
        submenu = engine.to_submenu(binding.item)
        track_list = engine.reader(binding)('track-list', [])
        if not track_list:
            return
        submenu.extend(build_track_items(engine, binding, track_list, track_type, prop, False))
    return update_track_menu


def format_time(seconds):
    seconds = int(seconds)
    return f"{seconds // 3600:02d}:{seconds // 60 % 60:02d}:{seconds % 60:02d}"


def update_chapters_menu(engine, binding):
    """``#@chapters``: seek to a chapter."""
    submenu = engine.to_submenu(binding.item)
    get = engine.reader(binding)
    chapter_list = get('chapter-list', [])
    if not chapter_list:
        return

    pos = _as_int(get('chapter', -1), -1)
    limit = engine.options.max_title_length
    for index, chapter in enumerate(chapter_list):
        title = abbr_title(chapter.get('title'), limit) or f"Chapter {index + 1}"
        time = chapter.get('time') or 0
        submenu.append(MenuItem(
            title=f"{title}\t[{format_time(time)}]",
            cmd=f"seek {time:f} absolute",
            state=['checked'] if index == pos else [],
        ))


def update_editions_menu(engine, binding):
    """``#@editions``: switch the edition."""
    submenu = engine.to_submenu(binding.item)
    get = engine.reader(binding)
    edition_list = get('edition-list', [])
    if not edition_list:
        return

    current = _as_int(get('current-edition', -1), -1)
    limit = engine.options.max_title_length
    for index, edition in enumerate(edition_list):
        title = abbr_title(edition.get('title'), limit) or f"Edition {index + 1}"
        if edition.get('default'):
            title += ' [default]'
        submenu.append(MenuItem(
            title=title,
            cmd=f"set edition {index}",
            state=['checked'] if index == current else [],
        ))


def update_audio_devices_menu(engine, binding):
    """``#@audio-devices``: pick the audio output device."""
    submenu = engine.to_submenu(binding.item)
    get = engine.reader(binding)
    device_list = get('audio-device-list', [])
    if not device_list:
        return

    current = get('audio-device', '')
    for device in device_list:
        name = device.get('name')
        submenu.append(MenuItem(
            title=device.get('description') or name,
            cmd=f"set audio-device {name}",
            state=['checked'] if name == current else [],
        ))


def build_playlist_title(entry, index, limit):
    """Title of a playlist entry, with the file extension on the right."""
    title = entry.get('title') or ''
    ext = ''
    filename = entry.get('filename')
    if filename:
        basename = posixpath.basename(filename.replace('\\', '/')) or filename
        match = _EXT_RE.match(basename)
        if not title:
            title = match.group(1) if match else basename
        if match:
            ext = match.group(2)
    title = abbr_title(title, limit) if title else f"Item {index}"
    return f"{title}\t{ext.upper()}" if ext else title


def update_playlist_menu(engine, binding):
    """``#@playlist``: jump to a playlist entry."""
    submenu = engine.to_submenu(binding.item)
    playlist = engine.reader(binding)('playlist', [])
    if not playlist:
        return

    cap = engine.options.max_playlist_items
    limit = engine.options.max_title_length
    for index, entry in enumerate(playlist):
        if cap > 0 and index >= cap:
            break
        submenu.append(MenuItem(
            title=build_playlist_title(entry, index, limit),
            cmd=f"playlist-play-index {index}",
            state=['checked'] if entry.get('current') else [],
        ))

    if cap > 0 and len(playlist) > cap:
        submenu.append(MenuItem(
            title=f"{ELLIPSIS}\t[{len(playlist) - cap}]",
            cmd='script-message-to uosc playlist' if engine.state.has_uosc else 'ignore',
        ))


def is_excluded_profile(name):
    return name in EXCLUDED_PROFILES or 'gui' in name


def update_profiles_menu(engine, binding):
    """``#@profiles``: apply a profile."""
    submenu = engine.to_submenu(binding.item)
    profile_list = engine.reader(binding)('profile-list', [])
    if not profile_list:
        return

    for profile in profile_list:
        name = profile.get('name') or ''
        if not name or is_excluded_profile(name):
            continue
        submenu.append(MenuItem(
            title=name,
            cmd=f"show-text {name}; apply-profile {name}",
        ))


UPDATERS = {
    'tracks': update_tracks_menu,
    'tracks/video': track_menu_updater('video', 'vid'),
    'tracks/audio': track_menu_updater('audio', 'aid'),
    'tracks/sub': track_menu_updater('sub', 'sid'),
    'tracks/sub-secondary': track_menu_updater('sub', 'secondary-sid'),
    'chapters': update_chapters_menu,
    'editions': update_editions_menu,
    'audio-devices': update_audio_devices_menu,
    'playlist': update_playlist_menu,
    'profiles': update_profiles_menu,
}
