"""Interface to the player the engine runs against."""


class Host:
    """Operations the menu engine needs from the player.

    ``MpvIpcHost`` implements these over mpv's JSON IPC; tests use an
    in-memory implementation.
    """

    def client_name(self):
        """Name other clients use to send script messages to us."""
        raise NotImplementedError

    def get_property(self, name):
        """Return the native value of a property.

        Raises:
            PropertyNotFound: The player does not know the property.
        """
        raise NotImplementedError

    def property_list(self):
        """Return the names of all top-level properties."""
        raise NotImplementedError

    def observe_property(self, name, callback):
        """Call ``callback(name, value)`` whenever the property changes."""
        raise NotImplementedError

    def set_property(self, name, value):
        raise NotImplementedError

    def command(self, *args):
        raise NotImplementedError

    def expand_path(self, path):
        return self.command('expand-path', path)

    def script_message_to(self, target, *args):
        self.command('script-message-to', target, *args)

    def broadcast(self, *args):
        self.command('script-message', *args)

    def show_text(self, text, duration=3000):
        self.command('show-text', text, str(duration))
