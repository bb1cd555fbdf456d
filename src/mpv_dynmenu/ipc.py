"""mpv JSON IPC client and event loop."""
import json
import logging
import select
import socket
from collections import deque

from .errors import CommandError, HostError, PropertyNotFound
from .host import Host

logger = logging.getLogger(__name__)


def connect_unix(path, timeout=None):
    sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    sock.settimeout(timeout)
    try:
        sock.connect(path)
    except OSError:
        sock.close()
        raise
    return sock


def socket_readable(sock):
    readable, _, _ = select.select([sock], [], [], 0)
    return bool(readable)


class MpvIpcHost(Host):
    """Talks to mpv over the socket given with ``--input-ipc-server``.

    Messages are newline separated JSON. Replies are matched to requests by
    ``request_id``; events that arrive while waiting for a reply are queued and
    handled by ``run``.
    """

    def __init__(self, socket_path, connect=None, poll=None):
        """
        Args:
            socket_path: Path of mpv's IPC socket.
            connect: Callable returning a connected socket, for tests.
            poll: Callable telling whether the socket has data to read.
        """
        self.socket_path = socket_path
        self._connect = connect or connect_unix
        self._poll = poll or socket_readable
        self._sock = None
        self._buffer = b''
        self._request_id = 0
        self._observer_id = 0
        self._observers = {}
        self._events = deque()
        self._client_name = None
        self.message_handler = None

    def connect(self):
        try:
            self._sock = self._connect(self.socket_path)
        except OSError as e:
            raise HostError(f"Cannot connect to mpv at {self.socket_path}: {e}") from e
        logger.info(f"Connected to mpv at {self.socket_path}")

    def close(self):
        if self._sock is not None:
            try:
                self._sock.close()
            except OSError:
                pass
            self._sock = None

    def _send(self, payload):
        data = json.dumps(payload, ensure_ascii=False) + '\n'
        try:
            self._sock.sendall(data.encode('utf-8'))
        except OSError as e:
            raise HostError(f"Lost connection to mpv: {e}") from e

    def _read_message(self):
        while b'\n' not in self._buffer:
            try:
                chunk = self._sock.recv(65536)
            except OSError as e:
                raise HostError(f"Lost connection to mpv: {e}") from e
            if not chunk:
                raise HostError("mpv closed the connection")
            self._buffer += chunk
        line, _, self._buffer = self._buffer.partition(b'\n')
        if not line.strip():
            return {}
        try:
            return json.loads(line.decode('utf-8'))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring malformed message from mpv: {e}")
            return {}

    def _has_pending(self):
        return b'\n' in self._buffer or self._poll(self._sock)

    def request(self, *args):
        """Run an mpv command and return its ``data``.

        Raises:
            PropertyNotFound: mpv reported an unknown property.
            CommandError: mpv rejected the command.
            HostError: The connection failed.
        """
        self._request_id += 1
        request_id = self._request_id
        self._send({'command': list(args), 'request_id': request_id})
        while True:
            message = self._read_message()
            if 'event' in message:
                self._events.append(message)
                continue
            if message.get('request_id') != request_id:
                continue
            error = message.get('error', 'success')
            if error == 'success':
                return message.get('data')
            if error == 'property not found' and len(args) > 1:
                raise PropertyNotFound(args[1])
            if error == 'property unavailable':
                return None
            raise CommandError(f"{args[0]} failed: {error}")

    def client_name(self):
        if self._client_name is None:
            self._client_name = self.request('client_name')
        return self._client_name

    def get_property(self, name):
        return self.request('get_property', name)

    def property_list(self):
        return self.request('get_property', 'property-list') or []

    def observe_property(self, name, callback):
        self._observer_id += 1
        self._observers[self._observer_id] = callback
        self.request('observe_property', self._observer_id, name)

    def set_property(self, name, value):
        self.request('set_property', name, value)

    def command(self, *args):
        return self.request(*args)

    def bind_key(self, key, *command):
        """Bind ``key`` to a script message sent back to this client."""
        target = self.client_name()
        self.request('keybind', key, ' '.join(('script-message-to', target) + command))

    def dispatch(self, event):
        """Handle one event.

        Returns:
            False when mpv is shutting down.
        """
        kind = event.get('event')
        if kind == 'property-change':
            callback = self._observers.get(event.get('id'))
            if callback is not None:
                callback(event.get('name'), event.get('data'))
        elif kind == 'client-message':
            if self.message_handler is not None:
                self.message_handler(event.get('args') or [])
        elif kind == 'shutdown':
            return False
        return True

    def run(self, engine):
        """Process events until mpv shuts down.

        ``engine.tick()`` runs whenever no further event is waiting, so bursts
        of property changes are handled with a single refresh.
        """
        while True:
            if not self._events:
                if not self._has_pending():
                    engine.tick()
                # the tick's own requests may have queued events
                if not self._events:
                    self._events.append(self._read_message())
            event = self._events.popleft()
            if 'event' in event and not self.dispatch(event):
                logger.info("mpv is shutting down")
                return
