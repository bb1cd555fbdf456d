import sys
import argparse
import logging

# Local imports
from .config import load_options
from .engine import MenuEngine
from .errors import HostError, ResourceError
from .ipc import MpvIpcHost
from .parser import parse_input_conf, read_input_conf
from .protocol import ProtocolHandler

# Setup Logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


class MenuApp:
    def __init__(self, host, options):
        self.host = host
        self.options = options
        self.engine = MenuEngine(host, options)
        self.protocol = ProtocolHandler(self.engine)
        self.host.message_handler = self.protocol.handle

    def start(self):
        """Read input.conf and load the menu; exits if it cannot be read."""
        try:
            conf = read_input_conf(self.host, self.options)
        except ResourceError as e:
            logger.error(f"Failed to load menu: {e}")
            self.host.show_text(f"Failed to load menu: {e}")
            sys.exit(1)

        items = parse_input_conf(conf, self.options)
        logger.info(f"Loaded {len(items)} top-level menu items")
        self.engine.load(items)

        if self.options.show_binding:
            self.host.bind_key(self.options.show_binding, 'show')

    def run(self):
        try:
            self.host.run(self.engine)
        except KeyboardInterrupt:
            logger.info("Interrupted")
        except HostError as e:
            logger.error(f"{e}")
        finally:
            self.engine.shutdown()
            self.host.close()


def main(argv=None):
    parser = argparse.ArgumentParser(description="Dynamic context menu for mpv")
    parser.add_argument("--socket", required=True, help="Path of mpv's --input-ipc-server socket")
    parser.add_argument("--config", default=None, help="Path to options file (YAML)")
    parser.add_argument("--input-conf", default=None, help="Read menu from this file instead of mpv's input.conf")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args(argv)

    try:
        options = load_options(args.config)
    except ResourceError as e:
        logger.error(f"{e}")
        sys.exit(1)
    if args.input_conf:
        options.input_conf = args.input_conf

    level = 'DEBUG' if args.verbose else options.log_level.upper()
    logging.getLogger().setLevel(getattr(logging, level, logging.INFO))

    host = MpvIpcHost(args.socket)
    try:
        host.connect()
    except HostError as e:
        logger.error(f"{e}")
        sys.exit(1)

    app = MenuApp(host, options)
    app.start()
    app.run()


if __name__ == "__main__":
    main()
