"""Tests for bindings, dirty tracking and the commit cycle."""
import logging

import pytest
from unittest.mock import MagicMock

from mpv_dynmenu.config import Options
from mpv_dynmenu.engine import MenuEngine
from mpv_dynmenu.errors import CommandError, HostError
from mpv_dynmenu.menu import MenuItem
from mpv_dynmenu.parser import parse_input_conf

from conftest import FakeHost, MENU_PROP

CONF = """\
SPACE cycle pause          #menu: Pause #@state=pause
m     cycle mute           #menu: Audio > Mute #@state=mute
_     ignore               #menu: Audio > -
_     ignore               #menu: Audio > Devices #@audio-devices
_     ignore               #menu: Chapters #@chapters
_     ignore               #menu: Chapters Again #@chapters
_     ignore               #menu: Mystery #@no-such-keyword
q     quit                 #menu: Quit
"""


@pytest.fixture
def player():
    return FakeHost({
        'pause': False,
        'mute': True,
        'volume': 50,
        'audio-device-list': [{'name': 'auto', 'description': 'Auto'}],
        'audio-device': 'auto',
        'chapter-list': [{'title': 'One', 'time': 0}],
        'chapter': 0,
    })


@pytest.fixture
def loaded(player):
    options = Options()
    engine = MenuEngine(player, options)
    engine.load(parse_input_conf(CONF, options))
    return engine


def find(items, title):
    for item in items:
        if item.title.split('\t')[0] == title:
            return item
        if item.submenu:
            found = find(item.submenu, title)
            if found:
                return found
    return None


class TestLoad:
    """Test directive scanning on load."""

    def test_bindings_registered_in_order(self, loaded):
        """Test every directive becomes a binding, in tree order."""
        keywords = [b.keyword for b in loaded.state.bindings]
        assert keywords == [
            'state=pause', 'state=mute', 'audio-devices',
            'chapters', 'chapters', 'no-such-keyword',
        ]

    def test_keyword_groups_and_indexes(self, loaded):
        """Test bindings sharing a keyword are grouped with 1-based ids."""
        group = loaded.bindings_for('chapters')
        assert [b.index for b in group] == [1, 2]
        assert set(loaded.keywords()) == {
            'state=pause', 'state=mute', 'audio-devices', 'chapters', 'no-such-keyword',
        }

    def test_builders_run_on_load(self, loaded):
        """Test bound submenus are filled immediately."""
        chapters = find(loaded.state.items, 'Chapters')
        assert chapters.type == 'submenu'
        assert chapters.submenu[0].title == 'One\t[00:00:00]'

    def test_unknown_keyword_left_alone(self, loaded):
        """Test an unknown keyword keeps its item unchanged."""
        mystery = find(loaded.state.items, 'Mystery')
        assert mystery.type == 'normal'
        assert mystery.cmd == 'ignore'
        assert loaded.bindings_for('no-such-keyword')[0].updater is None

    def test_menu_ready_broadcast(self, loaded, player):
        """Test other clients are told the menu is ready."""
        assert ('script-message', 'menu-ready', 'dyn_menu') in player.commands

    def test_first_tick_publishes(self, loaded, player):
        """Test the loaded tree is published on the first tick."""
        assert loaded.tick() is True
        published = player.menu_publishes()
        assert len(published) == 1
        assert [i['title'] for i in published[0]] == ['Pause\tSPACE', 'Audio', 'Chapters', 'Chapters Again', 'Mystery', 'Quit\tq']


class TestStateExpressions:
    """Test #@state bindings."""

    def test_boolean_result_checks(self, loaded):
        """Test a true property result checks the item."""
        assert find(loaded.state.items, 'Mute').state == ['checked']
        assert find(loaded.state.items, 'Pause').state == []

    def test_flag_string_result(self, player):
        """Test a comma separated result sets several flags."""
        engine = MenuEngine(player, Options())
        item = MenuItem(title='Volume', cmd='ignore')
        engine.bind(item, "state=volume >= 50 and 'checked,disabled' or ''")
        assert item.state == ['checked', 'disabled']

        player.change('volume', 10)
        engine.tick()
        assert item.state == []

    def test_state_follows_property(self, loaded, player):
        """Test a change is applied on the next tick, not before."""
        pause = find(loaded.state.items, 'Pause')
        player.change('pause', True)
        assert pause.state == []
        loaded.tick()
        assert pause.state == ['checked']

    def test_runtime_error_keeps_state(self, player, caplog):
        """Test a failing evaluation leaves the previous state in place."""
        caplog.set_level(logging.DEBUG, logger='mpv_dynmenu')
        engine = MenuEngine(player, Options())
        item = MenuItem(title='Loud', cmd='ignore')
        engine.bind(item, 'state=volume > 40')
        assert item.state == ['checked']

        player.change('volume', 'loud')
        engine.tick()
        assert item.state == ['checked']
        assert 'state expr error' in caplog.text

    def test_compile_error_is_false(self, player, caplog):
        """Test a syntax error logs and leaves the item unchecked."""
        engine = MenuEngine(player, Options())
        item = MenuItem(title='Broken', cmd='ignore', state=['checked'])
        engine.bind(item, 'state=mute and')
        assert item.state == []
        assert "expr '[Broken]:state=mute and'" in caplog.text


class TestDirtyTracking:
    """Test which bindings are refreshed."""

    def test_unrelated_change_does_not_dirty(self, loaded, player):
        """Test a property nobody read leaves all bindings clean."""
        loaded.props.get('volume')
        player.change('volume', 99)
        assert not any(b.dirty for b in loaded.state.bindings)
        assert loaded.state.has_dirty is False

    def test_change_dirties_only_readers(self, loaded, player):
        """Test only bindings that read the property are marked."""
        player.change('chapter', 0)
        player.change('mute', False)
        dirty = [b.keyword for b in loaded.state.bindings if b.dirty]
        assert dirty == ['state=mute']

    def test_conditional_reads_update_dependencies(self, player):
        """Test dependencies follow what the last evaluation actually read."""
        engine = MenuEngine(player, Options())
        item = MenuItem(title='Both', cmd='ignore')
        binding = engine.bind(item, 'state=pause and mute')
        assert engine.props.dependencies(binding) == {'pause'}

        player.change('mute', False)
        assert binding.dirty is False

        player.change('pause', True)
        engine.tick()
        assert engine.props.dependencies(binding) == {'pause', 'mute'}

        player.change('mute', True)
        assert binding.dirty is True

    def test_tick_clears_flags(self, loaded, player):
        """Test dirty flags are cleared after refreshing."""
        player.change('mute', False)
        loaded.tick()
        assert loaded.state.has_dirty is False
        assert not any(b.dirty for b in loaded.state.bindings)


class TestCommit:
    """Test publishing at settle points."""

    def test_many_changes_one_publish(self, loaded, player):
        """Test N changes between two ticks give one publish."""
        loaded.tick()
        player.published.clear()

        for i in range(10):
            player.change('pause', i % 2 == 0)
            player.change('mute', i % 2 == 1)
            player.change('chapter-list', [{'title': f'C{i}', 'time': i}])
        loaded.tick()

        assert len(player.menu_publishes()) == 1
        assert find(loaded.state.items, 'Chapters').submenu[0].title == 'C9\t[00:00:09]'

    def test_no_change_no_publish(self, loaded, player):
        """Test a tick with nothing dirty publishes nothing."""
        loaded.tick()
        player.published.clear()
        assert loaded.tick() is False
        assert player.published == []

    def test_unchanged_state_no_publish(self, player):
        """Test re-evaluating to the same state does not republish."""
        engine = MenuEngine(player, Options())
        item = MenuItem(title='Big', cmd='ignore')
        engine.state.items = [item]
        engine.bind(item, 'state=volume > 10')
        engine.tick()
        player.published.clear()

        player.change('volume', 60)
        engine.tick()
        assert player.published == []

    def test_publish_target(self, player):
        """Test the tree goes to the configured property."""
        engine = MenuEngine(player, Options(menu_property='user-data/test/menu'))
        engine.load([MenuItem(title='Only', cmd='ignore')])
        engine.tick()
        assert player.properties['user-data/test/menu'] == [
            {'title': 'Only', 'type': 'normal', 'cmd': 'ignore'},
        ]

    def test_failing_builder_isolated(self, player, caplog):
        """Test a builder crash is logged and the tick still publishes."""
        player.properties['chapter-list'] = ['not a dict']
        engine = MenuEngine(player, Options())
        engine.load(parse_input_conf(CONF, Options()))
        assert engine.tick() is True
        assert 'Failed to update menu' in caplog.text

    def test_lost_connection_in_builder_raises(self, loaded):
        """Test a dead connection is not swallowed by the refresh."""
        binding = loaded.bindings_for('chapters')[0]
        binding.updater = MagicMock(side_effect=HostError("mpv closed the connection"))
        binding.dirty = True
        loaded.state.has_dirty = True
        with pytest.raises(HostError):
            loaded.tick()

    def test_rejected_command_in_builder_logged(self, loaded, caplog):
        """Test a command mpv rejects only fails that one binding."""
        binding = loaded.bindings_for('chapters')[0]
        binding.updater = MagicMock(side_effect=CommandError("get_property failed: error"))
        binding.dirty = True
        loaded.state.has_dirty = True
        assert loaded.tick() is True
        assert 'Failed to update menu' in caplog.text

    def test_reentrant_tick_ignored(self, player):
        """Test a tick triggered while publishing does nothing."""
        engine = MenuEngine(player, Options())
        engine.load([MenuItem(title='Only', cmd='ignore')])
        calls = []
        original = player.set_property

        def set_property(name, value):
            calls.append(engine.tick())
            original(name, value)

        player.set_property = set_property
        assert engine.tick() is True
        assert calls == [False]

    def test_shutdown(self, loaded):
        """Test shutdown drops the tree and bindings."""
        loaded.shutdown()
        assert loaded.state.items == []
        assert loaded.keywords() == []
        assert loaded.tick() is False


def test_published_items_are_copies(player):
    """Test later mutations do not alter what was published."""
    engine = MenuEngine(player, Options())
    item = MenuItem(title='Only', cmd='ignore')
    engine.load([item])
    engine.tick()
    item.title = 'Changed'
    assert player.properties[MENU_PROP][0]['title'] == 'Only'
