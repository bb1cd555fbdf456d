"""Tests for application startup and the command line."""
import pytest
from unittest.mock import MagicMock, patch

from mpv_dynmenu.config import Options
from mpv_dynmenu.errors import HostError
from mpv_dynmenu.main import MenuApp, main

from conftest import FakeHost, MENU_PROP


class TestMenuApp:
    """Test MenuApp startup and shutdown."""

    def test_start_loads_menu(self):
        """Test the menu is parsed, bound and the show key installed."""
        player = FakeHost({
            'input-conf': 'memory://a show-text hello #menu: Greet > Say Hi\n'
                          'm cycle mute #menu: Mute #@state=mute',
            'mute': True,
        })
        app = MenuApp(player, Options())
        app.start()

        items = app.engine.state.items
        assert items[0].title == 'Greet'
        assert items[1].state == ['checked']
        assert player.bindings == [('MBTN_RIGHT', 'show')]
        assert player.message_handler == app.protocol.handle

    def test_run_publishes_and_tears_down(self):
        """Test run ticks the engine and closes the host."""
        player = FakeHost({'input-conf': 'memory://q quit #menu: Quit'})
        app = MenuApp(player, Options())
        app.start()
        app.run()

        assert player.menu_publishes() == [[{'title': 'Quit\tq', 'type': 'normal', 'cmd': 'quit'}]]
        assert player.closed is True
        assert app.engine.state.items == []

    def test_unreadable_input_conf_exits(self):
        """Test startup fails with a message on the OSD."""
        player = FakeHost({'input-conf': '/missing/input.conf'})
        app = MenuApp(player, Options())
        with pytest.raises(SystemExit) as exc:
            app.start()
        assert exc.value.code == 1
        assert any(c[0] == 'show-text' for c in player.commands)
        assert MENU_PROP not in player.properties

    def test_host_error_ends_run(self):
        """Test a lost connection ends run cleanly."""
        player = FakeHost({'input-conf': 'memory://'})
        player.run = MagicMock(side_effect=HostError("gone"))
        app = MenuApp(player, Options())
        app.start()
        app.run()
        assert player.closed is True

    def test_no_show_binding(self):
        """Test an empty show_binding installs no key."""
        player = FakeHost({'input-conf': 'memory://'})
        MenuApp(player, Options(show_binding='')).start()
        assert player.bindings == []


class TestMain:
    """Test the command line entry point."""

    def test_bad_config_exits(self, tmp_path):
        """Test an invalid options file exits with status 1."""
        path = tmp_path / 'opts.yaml'
        path.write_text('max_title_length: nope\n')
        with pytest.raises(SystemExit) as exc:
            main(['--socket', '/tmp/sock', '--config', str(path)])
        assert exc.value.code == 1

    def test_connect_failure_exits(self):
        """Test an unreachable socket exits with status 1."""
        with patch('mpv_dynmenu.main.MpvIpcHost') as mock_host:
            mock_host.return_value.connect.side_effect = HostError("refused")
            with pytest.raises(SystemExit) as exc:
                main(['--socket', '/tmp/none'])
        assert exc.value.code == 1

    def test_runs_app(self, tmp_path):
        """Test main wires options, host and app together."""
        with patch('mpv_dynmenu.main.MpvIpcHost') as mock_host, \
             patch('mpv_dynmenu.main.MenuApp') as mock_app:
            main(['--socket', '/tmp/sock', '--input-conf', '/tmp/menu.conf'])

        mock_host.assert_called_once_with('/tmp/sock')
        options = mock_app.call_args[0][1]
        assert options.input_conf == '/tmp/menu.conf'
        mock_app.return_value.start.assert_called_once()
        mock_app.return_value.run.assert_called_once()
