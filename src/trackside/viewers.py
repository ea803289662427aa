"""Viewer connections and periodic snapshot broadcast.

Each connected viewer gets its own :class:`ViewerConnection` with a
cancellable push task tied 1:1 to the connection's lifetime. Viewers are
independent: a slow or broken viewer only ever stalls or tears down its
own task.
"""

from __future__ import annotations

import asyncio
import contextlib
import itertools
import logging
from collections.abc import Callable, Mapping
from typing import Any, Protocol

from trackside._constants import DEFAULT_BROADCAST_INTERVAL_S
from trackside.exceptions import TracksideError, ViewerSendError
from trackside.state.store import StateStore

_logger = logging.getLogger(__name__)

MessageSource = Callable[[], Mapping[str, Any]]


class ViewerTransport(Protocol):
    """Structural interface of a duplex viewer connection.

    :class:`aiohttp.web.WebSocketResponse` satisfies it; tests pass doubles.
    """

    async def send_json(self, data: Any) -> None: ...

    async def close(self) -> Any: ...


class ViewerConnection:
    """One viewer and its periodic push task."""

    def __init__(
        self,
        viewer_id: str,
        transport: ViewerTransport,
        *,
        source: MessageSource,
        interval: float = DEFAULT_BROADCAST_INTERVAL_S,
        on_closed: Callable[[ViewerConnection], None] | None = None,
        remote: str | None = None,
    ) -> None:
        self._viewer_id = viewer_id
        self._transport = transport
        self._source = source
        self._interval = interval
        self._on_closed = on_closed
        self._remote = remote
        self._task: asyncio.Task[None] | None = None
        self._closed = False
        self._messages_sent = 0

    @property
    def viewer_id(self) -> str:
        return self._viewer_id

    @property
    def remote(self) -> str | None:
        return self._remote

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def messages_sent(self) -> int:
        return self._messages_sent

    def start(self) -> None:
        if self._closed:
            raise TracksideError(f"Viewer {self._viewer_id} is closed and cannot be restarted")
        if self._task is None:
            self._task = asyncio.create_task(self._push_loop(), name=f"trackside-{self._viewer_id}")

    def close(self) -> None:
        """Stop the push task immediately. No send happens after this returns."""
        if self._closed:
            return
        self._closed = True
        task = self._task
        self._task = None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
        if self._on_closed is not None:
            self._on_closed(self)
        _logger.info("Viewer %s disconnected", self._viewer_id)

    async def aclose(self) -> None:
        """Close the viewer and its transport."""
        task = self._task
        self.close()
        if task is not None and task is not asyncio.current_task():
            with contextlib.suppress(asyncio.CancelledError):
                await task
        await self._close_transport()

    async def push(self) -> None:
        """Send the current snapshot message once.

        Raises
        ------
        ViewerSendError
            The viewer is closed or the transport rejected the message.
        """
        if self._closed:
            raise ViewerSendError("Viewer is closed", viewer_id=self._viewer_id)
        message = self._source()
        try:
            await self._transport.send_json(message)
        except (OSError, RuntimeError) as exc:
            raise ViewerSendError(
                f"Send to viewer {self._viewer_id} failed: {exc}",
                viewer_id=self._viewer_id,
            ) from exc
        self._messages_sent += 1

    async def _push_loop(self) -> None:
        while not self._closed:
            try:
                await self.push()
            except ViewerSendError as exc:
                _logger.warning("Dropping viewer %s: %s", self._viewer_id, exc)
                self.close()
                await self._close_transport()
                return
            await asyncio.sleep(self._interval)

    async def _close_transport(self) -> None:
        try:
            await self._transport.close()
        except (OSError, RuntimeError):
            _logger.debug("Viewer %s transport close failed", self._viewer_id, exc_info=True)


class ConnectionManager:
    """Tracks live viewers and their lifecycle.

    Usage::

        manager = ConnectionManager(store, interval=1.0)
        viewer = manager.register(ws, remote=request.remote)
        ...
        viewer.close()
    """

    def __init__(self, store: StateStore, *, interval: float = DEFAULT_BROADCAST_INTERVAL_S) -> None:
        self._store = store
        self._interval = interval
        self._viewers: dict[str, ViewerConnection] = {}
        self._ids = itertools.count(1)

    def __len__(self) -> int:
        return len(self._viewers)

    @property
    def viewers(self) -> tuple[ViewerConnection, ...]:
        return tuple(self._viewers.values())

    def snapshot_message(self) -> dict[str, Any]:
        return self._store.read().to_wire()

    def register(self, transport: ViewerTransport, *, remote: str | None = None) -> ViewerConnection:
        """Register a new viewer and start pushing snapshots to it."""
        viewer = ViewerConnection(
            f"viewer-{next(self._ids)}",
            transport,
            source=self.snapshot_message,
            interval=self._interval,
            on_closed=self._forget,
            remote=remote,
        )
        self._viewers[viewer.viewer_id] = viewer
        viewer.start()
        _logger.info("Viewer %s connected from %s (%d active)", viewer.viewer_id, remote or "?", len(self._viewers))
        return viewer

    def unregister(self, viewer: ViewerConnection) -> None:
        viewer.close()

    def _forget(self, viewer: ViewerConnection) -> None:
        self._viewers.pop(viewer.viewer_id, None)

    async def close_all(self) -> None:
        """Close every viewer and its transport."""
        viewers = list(self._viewers.values())
        if not viewers:
            return
        _logger.info("Closing %d viewer connection(s)", len(viewers))
        await asyncio.gather(*(viewer.aclose() for viewer in viewers))
