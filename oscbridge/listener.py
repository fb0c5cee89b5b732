"""
OSC Listener - UDP receiver feeding samples into the transformer chain.

ARCHITECTURE:
    pythonosc BlockingOSCUDPServer on its own daemon thread
      -> default dispatcher handler for every address
      -> coerce arguments (non-numeric -> 0), stamp receive time (ms)
      -> on_sample(Sample)

The blocking server handles one datagram at a time, so on_sample sees
samples in arrival order. Datagrams that fail OSC parsing are discarded by
pythonosc before reaching the handler; exceptions raised by on_sample are
logged and never stop the receive loop.

The port is bound exclusively (no SO_REUSEPORT): a second listener on a busy
port fails with OSError instead of silently sharing the datagrams.

USAGE:
    listener = OSCListener(config, on_sample=transformer.add_message)
    listener.start()     # raises OSError if the port can't be bound
    ...
    listener.close()     # blocks until the receive thread has exited
"""

import threading
import time
from typing import Callable, Optional, Tuple

from pythonosc import dispatcher, osc_server

from oscbridge import osc
from oscbridge.config import ListenerConfig
from oscbridge.log import get_logger
from oscbridge.transformer import Sample

logger = get_logger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


class OSCListener:
    """One bound UDP port delivering Samples to a callback.

    Args:
        config: Bind address/port
        on_sample: Called on the receive thread for every message
        stats: Optional counters (total_messages, coerced_arguments, handler_errors)
    """

    def __init__(self, config: ListenerConfig, on_sample: Callable[[Sample], None],
                 stats: Optional[osc.MessageStatistics] = None):
        self.config = config
        self.on_sample = on_sample
        self.stats = stats or osc.MessageStatistics()
        self.server: Optional[osc_server.BlockingOSCUDPServer] = None
        self.thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self.server is not None

    @property
    def bound_address(self) -> Optional[Tuple[str, int]]:
        """Actual (host, port), useful when binding port 0."""
        if self.server is None:
            return None
        return self.server.server_address[:2]

    def handle_message(self, address: str, *args) -> None:
        """Dispatcher callback: build a Sample and hand it on."""
        self.stats.increment('total_messages')
        values, coerced = osc.coerce_arguments(args)
        if coerced:
            self.stats.increment('coerced_arguments', coerced)
            logger.debug(f"Coerced {coerced} non-numeric argument(s) on {address} to 0")

        sample = Sample.create(address, values, now_ms())
        try:
            self.on_sample(sample)
        except Exception as e:
            self.stats.increment('handler_errors')
            logger.error(f"Error processing {address}: {e}")

    def start(self) -> None:
        """Bind the UDP port and start the receive thread.

        Raises:
            OSError: If the address/port can't be bound
        """
        if self.server is not None:
            return

        disp = dispatcher.Dispatcher()
        disp.set_default_handler(self.handle_message)

        self.server = osc_server.BlockingOSCUDPServer(
            (self.config.local_address, self.config.local_port),
            disp
        )

        self.thread = threading.Thread(
            target=self.server.serve_forever,
            kwargs={"poll_interval": 0.1},
            name=f"osc-listener-{self.config.local_port}",
            daemon=True,
        )
        self.thread.start()

        host, port = self.bound_address
        logger.info(f"OSC listener ready on {host}:{port}")

    def close(self) -> None:
        """Stop the receive thread and release the port.

        Must not be called from the receive thread itself.
        """
        server = self.server
        if server is None:
            return
        self.server = None

        server.shutdown()
        server.server_close()
        if self.thread is not None:
            self.thread.join(timeout=2)
            self.thread = None

        logger.info(f"OSC listener on port {self.config.local_port} closed")
