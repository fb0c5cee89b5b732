"""
Listener Service - lifecycle, sessions and serialised access to the pipeline.

ARCHITECTURE:
    ListenerService
      - active ListenerConfig (None when stopped)
      - OSCListener (UDP receive thread)
      - AggregateTransformer -> BufferedTransformer
      - CsvRecorder (only when recordData is set)
      - SessionRegistry (one entry per connected visualizer)

CONCURRENCY:
    The UDP receive thread (ingest), Flask request threads (reads, start,
    stop) and the scheduler thread (session expiry, recorder flush) all meet
    here. Every touch of the transformer happens under one RLock, including
    teardown, so a read never observes a half-closed pipeline and a sample
    racing a stop is simply dropped.

    Teardown detaches the pipeline under the lock and stops the UDP thread
    after releasing it: the receive thread may be blocked on the lock inside
    ingest(), and joining it while holding the lock would deadlock.

SESSION SEMANTICS:
    start while running  -> new session, existing config, noChanges=True
    stop while stopped   -> success, noChanges=True
    stop unknown session -> success, noChanges=True (disconnect is idempotent)
    stop last session    -> listener torn down
"""

import logging
import math
import threading
import time
from typing import Any, Dict, List, Mapping, Optional

from oscbridge import osc
from oscbridge.aggregate import AggregateTransformer
from oscbridge.config import ListenerConfig, ServerConfig, listener_config_from_mapping
from oscbridge.listener import OSCListener
from oscbridge.log import get_logger
from oscbridge.recorder import CsvRecorder
from oscbridge.sessions import SessionRegistry
from oscbridge.transformer import BufferedTransformer, Sample
from oscbridge.transforms import get_reduce_transform

logger = get_logger(__name__)


def finite_or_none(vector) -> List[Optional[float]]:
    """Copy of vector with NaN/inf replaced by None (JSON null).

    Buffers keep non-finite values because the aggregate functions skip NaN;
    only the polled snapshot is cleaned.
    """
    return [v if math.isfinite(v) else None for v in vector]


def build_transformer(config: ListenerConfig) -> AggregateTransformer:
    """Base transformer for the configured reducer wrapped with virtual addresses."""
    base = BufferedTransformer(get_reduce_transform(config.reducer))
    return AggregateTransformer(base, config.virtual_addresses)


class ListenerService:
    """Owns the single active listener and everything hanging off it.

    Args:
        server_config: Defaults and process-wide settings
        listener_factory: Builds an OSCListener (injectable for tests)
        clock: Time source for sessions (injectable for tests)
    """

    def __init__(self, server_config: Optional[ServerConfig] = None,
                 listener_factory=OSCListener, clock=time.monotonic):
        self.server_config = server_config or ServerConfig()
        self.listener_factory = listener_factory
        self.sessions = SessionRegistry(self.server_config.session_ttl_s, clock=clock)
        self.stats = osc.MessageStatistics()

        self._lock = threading.RLock()
        self.config: Optional[ListenerConfig] = None
        self.listener: Optional[OSCListener] = None
        self.transformer: Optional[AggregateTransformer] = None
        self.recorder: Optional[CsvRecorder] = None

    @property
    def running(self) -> bool:
        with self._lock:
            return self.transformer is not None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, payload: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        """Start the listener, or join the running one.

        Returns:
            {success, sessionId, config, noChanges} on success,
            {success: False, error} if the config is invalid or the port
            can't be bound

        Raises:
            ValueError: If payload is invalid (caller maps to HTTP 400)
        """
        with self._lock:
            if self.transformer is not None:
                session_id = self.sessions.create()
                logger.info(f"Client joined running listener (session {session_id}, "
                            f"{self.sessions.count()} total)")
                return {
                    "success": True,
                    "sessionId": session_id,
                    "config": self.config.to_dict(),
                    "noChanges": True,
                }

            config = listener_config_from_mapping(payload, self.server_config.listener).with_record_file()
            transformer = build_transformer(config)

            recorder = None
            if config.record_data:
                recorder = CsvRecorder(
                    config.record_file_name,
                    batch_size=self.server_config.record_batch_size,
                    flush_interval_s=self.server_config.record_flush_interval_s,
                )
                try:
                    recorder.open()
                except OSError as e:
                    logger.error(f"Cannot open recording file {config.record_file_name}: {e}")
                    return {"success": False, "error": f"Cannot open recording file: {e}"}

            listener = self.listener_factory(config, self.ingest, self.stats)

            # Publish before binding so the first datagram finds a transformer
            self.config = config
            self.transformer = transformer
            self.recorder = recorder
            try:
                listener.start()
            except OSError as e:
                self.config = None
                self.transformer = None
                self.recorder = None
                if recorder is not None:
                    recorder.close()
                if "Address already in use" in str(e):
                    logger.error(f"Port {config.local_port} already in use")
                else:
                    logger.error(f"Failed to bind {config.local_address}:{config.local_port}: {e}")
                return {"success": False, "error": f"Failed to start OSC listener: {e}"}

            self.listener = listener
            session_id = self.sessions.create()
            logger.info(f"Listener started on {config.local_address}:{config.local_port} "
                        f"(reducer={config.reducer}, record={config.record_data}, session {session_id})")
            return {
                "success": True,
                "sessionId": session_id,
                "config": config.to_dict(),
                "noChanges": False,
            }

    def stop(self, session_id: Optional[str] = None) -> Dict[str, Any]:
        """Disconnect one session; tear down when it was the last one."""
        with self._lock:
            if self.transformer is None:
                return {"success": True, "message": "Server already stopped", "noChanges": True}

            if not self.sessions.remove(session_id):
                remaining = self.sessions.count()
                logger.info(f"Stop for unknown session {session_id}, ignoring")
                return {
                    "success": True,
                    "message": "Session not found",
                    "noChanges": True,
                    "remainingSessions": remaining,
                }

            remaining = self.sessions.count()
            if remaining > 0:
                logger.info(f"Client disconnected (session {session_id}, {remaining} remaining)")
                return {
                    "success": True,
                    "message": "Client disconnected",
                    "remainingSessions": remaining,
                }

            listener, recorder = self._detach()

        self._close(listener, recorder)
        return {"success": True, "message": "Server stopped", "remainingSessions": 0}

    def shutdown(self) -> None:
        """Tear down regardless of sessions (process exit)."""
        with self._lock:
            self.sessions.clear()
            listener, recorder = self._detach()
        self._close(listener, recorder)

    def expire_sessions(self) -> List[str]:
        """Drop idle sessions; tear down if none remain. Idempotent."""
        with self._lock:
            expired = self.sessions.expire()
            if not expired:
                return []
            logger.info(f"Expired {len(expired)} idle session(s)")
            if self.transformer is None or self.sessions.count() > 0:
                return expired
            logger.info("Last session expired, stopping listener")
            listener, recorder = self._detach()

        self._close(listener, recorder)
        return expired

    def touch_session(self, session_id: Optional[str]) -> bool:
        if not session_id:
            return False
        return self.sessions.touch(session_id)

    def flush_recording(self) -> None:
        with self._lock:
            recorder = self.recorder
        if recorder is not None:
            recorder.flush_if_due()

    def _detach(self):
        """Drop references to the pipeline. Caller holds the lock."""
        listener, recorder = self.listener, self.recorder
        self.listener = None
        self.transformer = None
        self.recorder = None
        self.config = None
        return listener, recorder

    def _close(self, listener: Optional[OSCListener], recorder: Optional[CsvRecorder]) -> None:
        if listener is not None:
            listener.close()
        if recorder is not None:
            recorder.close()
        if listener is not None:
            logger.info("Listener stopped\n" + self.stats.format_stats("OSC LISTENER STATISTICS"))

    # ------------------------------------------------------------------
    # Pipeline access
    # ------------------------------------------------------------------

    def ingest(self, sample: Sample) -> None:
        """Receive-thread entry point: buffer (and record) one sample."""
        with self._lock:
            if self.transformer is None:
                self.stats.increment('dropped_messages')
                return
            self.transformer.add_message(sample)
            # Under the lock so teardown can't close the recorder mid-sample
            if self.recorder is not None:
                self.recorder.record(sample)
                self.stats.increment('recorded_samples')

    def status(self) -> Dict[str, Any]:
        with self._lock:
            if self.transformer is None:
                return {"running": False, "message": "Server not running"}
            return {
                "running": True,
                "config": self.config.to_dict(),
                "sessionCount": self.sessions.count(),
                "sessionIds": self.sessions.ids(),
            }

    def get_messages(self) -> Dict[str, List[float]]:
        with self._lock:
            if self.transformer is None:
                return {}
            if logger.isEnabledFor(logging.DEBUG):
                for address in self.transformer.get_addresses():
                    logger.debug(f"Buffer contents for {address}: "
                                 f"{self.transformer.get_buffer_contents(address)}")
            messages = self.transformer.get_transformed_messages()
        logger.debug(f"Transformed messages: {messages}")
        return {address: finite_or_none(vector) for address, vector in messages.items()}

    def get_message(self, address: str) -> Optional[List[Optional[float]]]:
        with self._lock:
            if self.transformer is None:
                return None
            value = self.transformer.get_transformed_address(address)
            if value is not None:
                logger.debug(f"Buffer contents for {address}: "
                             f"{self.transformer.get_buffer_contents(address)}")
        logger.debug(f"Transformed message for {address}: {value}")
        return finite_or_none(value) if value is not None else None

    def get_addresses(self) -> List[str]:
        with self._lock:
            return self.transformer.get_addresses() if self.transformer is not None else []

    def get_real_addresses(self) -> List[str]:
        with self._lock:
            return self.transformer.get_real_addresses() if self.transformer is not None else []

    def get_virtual_addresses(self) -> List[str]:
        with self._lock:
            return self.transformer.get_virtual_addresses() if self.transformer is not None else []

    def get_stats(self) -> Dict[str, Any]:
        counters = self.stats.snapshot()
        with self._lock:
            counters["addresses"] = len(self.transformer.get_addresses()) if self.transformer else 0
            counters["sessions"] = self.sessions.count()
        return counters
