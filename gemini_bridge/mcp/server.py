import sys
import json
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Optional, Dict, Any, BinaryIO, Callable, TextIO

from .protocol import INTERNAL_ERROR, SERVER_BUSY
from .state import _RPC_WRITE_LOCK

logger = logging.getLogger("GeminiBridge.mcp.server")

DispatchFn = Callable[[Dict[str, Any]], Optional[Dict[str, Any]]]


class McpServer:
    """
    Handles JSON-RPC communication over stdio with thread-pooled dispatching.

    The read loop never waits on a running gemini call: background messages
    go to the pool and their responses are written whenever they finish.
    """
    def __init__(
        self,
        dispatch_fn: DispatchFn,
        max_workers: int = 4,
        queue_limit: Optional[int] = None,
        should_background: Optional[Callable[[Dict[str, Any]], bool]] = None,
        output: Optional[TextIO] = None,
    ):
        self.dispatch_fn = dispatch_fn
        self.max_workers = max(1, max_workers)
        self.queue_limit = max(self.max_workers, queue_limit or self.max_workers * 8)
        self.should_background = should_background or (lambda msg: False)
        self.output = output

        self.transport_closed = threading.Event()
        self.write_lock = _RPC_WRITE_LOCK

        self._executor: Optional[ThreadPoolExecutor] = None
        self._executor_lock = threading.Lock()
        self._queue_semaphore = threading.BoundedSemaphore(self.queue_limit)

    def get_executor(self) -> ThreadPoolExecutor:
        with self._executor_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self.max_workers,
                    thread_name_prefix="gemini-mcp-dispatch",
                )
            return self._executor

    def stop(self, wait: bool = False):
        """Shut down the dispatcher and close transport."""
        with self._executor_lock:
            executor = self._executor
            self._executor = None
        if executor is not None:
            # In-flight calls finish and respond when wait=True.
            executor.shutdown(wait=wait, cancel_futures=not wait)
        self.transport_closed.set()

    def send_rpc(self, message: Dict[str, Any]) -> None:
        """Serialize and send a JSON-RPC message to stdout."""
        if self.transport_closed.is_set():
            return

        try:
            serialized = json.dumps(message)
            stream = self.output or sys.stdout
            with self.write_lock:
                if self.transport_closed.is_set():
                    return
                stream.write(serialized + "\n")
                stream.flush()
        except (BrokenPipeError, OSError) as exc:
            self.transport_closed.set()
            logger.warning("MCP stdio transport closed while sending: %s", exc)

    def send_error(self, msg_id: Any, code: int, message: str) -> None:
        """Convenience method for sending JSON-RPC errors."""
        self.send_rpc({
            "jsonrpc": "2.0",
            "id": msg_id,
            "error": {
                "code": code,
                "message": message,
            },
        })

    def read_message(self, stream: BinaryIO) -> Optional[Dict[str, Any]]:
        """
        Read one inbound JSON-RPC message from a binary stream.
        Supports Content-Length framing and newline-delimited JSON.
        """
        while True:
            line = stream.readline()
            if not line:
                return None
            if not line.strip():
                continue

            lowered = line.lower()
            if lowered.startswith(b"content-length:"):
                try:
                    content_length = int(line.split(b":", 1)[1].strip())
                    if content_length <= 0:
                        raise ValueError("content length must be positive")
                except ValueError:
                    logger.warning("Invalid Content-Length header: %r", line)
                    if not self._consume_framing_headers(stream):
                        return None
                    continue

                if not self._consume_framing_headers(stream):
                    return None

                payload = stream.read(content_length)
                if not payload or len(payload) != content_length:
                    return None

                msg = self._decode(payload)
                if msg is not None:
                    return msg
                continue

            msg = self._decode(line)
            if msg is not None:
                return msg

    def _decode(self, raw: bytes) -> Optional[Dict[str, Any]]:
        try:
            msg = json.loads(raw.decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError):
            logger.warning("Skipping undecodable inbound message (%d bytes)", len(raw))
            return None
        if isinstance(msg, dict):
            return msg
        logger.warning("Skipping non-object JSON-RPC message")
        return None

    def _consume_framing_headers(self, stream: BinaryIO) -> bool:
        while True:
            header_line = stream.readline()
            if not header_line:
                return False
            if header_line in (b"\r\n", b"\n"):
                return True

    def submit_dispatch(self, msg: Dict[str, Any]) -> bool:
        """Submit a message for background dispatch if a slot is available."""
        if not self._queue_semaphore.acquire(blocking=False):
            return False

        try:
            future = self.get_executor().submit(self._dispatch_guarded, msg)
        except Exception:
            self._queue_semaphore.release()
            raise

        future.add_done_callback(lambda f: self._queue_semaphore.release())
        return True

    def _dispatch_guarded(self, msg: Dict[str, Any]) -> None:
        msg_id = msg.get("id")
        try:
            response = self.dispatch_fn(msg)
        except Exception:
            logger.exception("Unexpected error during RPC dispatch")
            if msg_id is not None and not self.transport_closed.is_set():
                self.send_error(msg_id, INTERNAL_ERROR, "Internal error during request dispatch.")
            return
        if response is not None:
            self.send_rpc(response)

    def handle_message(self, msg: Dict[str, Any]) -> None:
        if self.should_background(msg):
            if not self.submit_dispatch(msg):
                msg_id = msg.get("id")
                logger.warning("Dispatch queue saturated; rejecting %s id=%r", msg.get("method"), msg_id)
                if msg_id is not None:
                    self.send_error(msg_id, SERVER_BUSY, "Server busy: dispatch queue is saturated.")
            return
        self._dispatch_guarded(msg)

    def serve(self, stream: BinaryIO) -> None:
        """
        Read messages until EOF or a closed transport, then drain in-flight calls.

        Any exception out of the loop (KeyboardInterrupt included) stops the
        dispatcher without waiting and is re-raised.
        """
        try:
            while not self.transport_closed.is_set():
                msg = self.read_message(stream)
                if msg is None:
                    break
                self.handle_message(msg)
        except BaseException:
            self.stop(wait=False)
            raise
        self.stop(wait=True)
