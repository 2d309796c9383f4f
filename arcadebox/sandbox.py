"""Sandbox host: one mounted player, its load state machine and its handles.

    idle -> loading -> ready | error

Every load gets a ticket. A newer load (or teardown) bumps the host's
generation, and a ticket that is no longer current is dropped at its next
suspension point: its arena is released and it never touches host state.
"""
from __future__ import annotations

import asyncio
import logging
import threading
from collections import OrderedDict
from typing import Callable, Dict, List, Optional, Tuple

from .archive import ArchiveReader, fetch_bundle
from .errors import ArchiveLoadError
from .interceptor import build_document
from .models import PlayState
from .resources import ArenaRegistry, HandleArena, ResourceTable, new_id

logger = logging.getLogger(__name__)

# never allow-same-origin
SANDBOX_FLAGS = "allow-scripts"

Notifier = Callable[[str], None]


class _Superseded(Exception):
    pass


class LoadTicket:
    __slots__ = ("generation", "url")

    def __init__(self, generation: int, url: str):
        self.generation = generation
        self.url = url

    def __repr__(self) -> str:
        return f"<LoadTicket #{self.generation} {self.url!r}>"


class SandboxHost:
    def __init__(
        self,
        slug: str,
        title: str,
        arenas: ArenaRegistry,
        notifier: Optional[Notifier] = None,
        fetcher: Callable[..., bytes] = fetch_bundle,
        timeout: float = 30.0,
    ):
        self.slug = slug
        self.title = title
        self.state = PlayState.IDLE
        self.source: Optional[str] = None
        self.error: Optional[ArchiveLoadError] = None
        self.document_url: Optional[str] = None
        self.table: Optional[ResourceTable] = None
        self.play_counted = False

        self._arenas = arenas
        self._notifier = notifier
        self._fetcher = fetcher
        self._timeout = timeout
        self._generation = 0
        self._arena: Optional[HandleArena] = None
        self._task: Optional[asyncio.Task] = None

    # -- public API --

    async def load(self, url: str) -> PlayState:
        """Load ``url`` and wait for it. Returns the host state afterwards,
        which belongs to whatever load is newest by then."""
        await self._schedule(self._begin(url))
        return self.state

    def set_source(self, url: str) -> "asyncio.Task":
        """Schedule a load of ``url`` on the running loop.

        Re-setting the current source while it is loading or ready does nothing.
        """
        if (url == self.source and self._task is not None
                and self.state in (PlayState.LOADING, PlayState.READY)):
            return self._task
        return self._schedule(self._begin(url))

    def reload(self) -> "asyncio.Task":
        if self.source is None:
            raise RuntimeError("nothing to reload: no source has been set")
        return self._schedule(self._begin(self.source))

    def teardown(self) -> None:
        """Invalidate in-flight loads and revoke every live handle."""
        self._generation += 1
        self._release()
        self.state = PlayState.IDLE
        self.source = None
        self.error = None
        self._task = None

    @property
    def document(self) -> Optional[str]:
        return self._arena.document if self._arena is not None else None

    @property
    def live_handles(self) -> int:
        return len(self._arena) if self._arena is not None else 0

    def snapshot(self) -> Dict:
        err = self.error
        return {
            "slug": self.slug,
            "title": self.title,
            "state": self.state.value,
            "source": self.source,
            "document_url": self.document_url if self.state is PlayState.READY else None,
            "sandbox": SANDBOX_FLAGS,
            "headline": err.headline if err is not None else None,
            "error": str(err) if err is not None else None,
            "error_type": type(err).__name__ if err is not None else None,
            "play_counted": self.play_counted,
        }

    # -- load pipeline --

    def _begin(self, url: str) -> LoadTicket:
        self._generation += 1
        self._release()
        self.source = url
        self.state = PlayState.LOADING
        self.error = None
        return LoadTicket(self._generation, url)

    def _schedule(self, ticket: LoadTicket) -> "asyncio.Task":
        self._task = asyncio.ensure_future(self._run(ticket))
        return self._task

    def _is_current(self, ticket: LoadTicket) -> bool:
        return ticket.generation == self._generation

    def _checkpoint(self, ticket: LoadTicket) -> None:
        if not self._is_current(ticket):
            raise _Superseded()

    async def _run(self, ticket: LoadTicket) -> None:
        arena: Optional[HandleArena] = None
        try:
            logger.info("loading %s (%s)", self.slug, ticket.url)
            data = await asyncio.to_thread(self._fetcher, ticket.url, self._timeout)
            self._checkpoint(ticket)

            with ArchiveReader(data) as reader:
                entry = reader.entry_point()

                arena = self._arenas.open()
                table = await ResourceTable.build_async(
                    reader.entries, arena, checkpoint=lambda: self._checkpoint(ticket)
                )
                document = build_document(entry.read_text(), table, entry.path)
            self._checkpoint(ticket)
            document_url = arena.commit_document(document, table)
        except _Superseded:
            logger.debug("discarding superseded load %r", ticket)
            self._drop(arena)
            return
        except ArchiveLoadError as e:
            self._drop(arena)
            self._fail(ticket, e)
            return
        except Exception as e:
            logger.exception("unexpected error while loading %s", ticket.url)
            self._drop(arena)
            err = ArchiveLoadError(str(e) or type(e).__name__)
            err.__cause__ = e
            self._fail(ticket, err)
            return

        self._arena = arena
        self.table = table
        self.document_url = document_url
        self.state = PlayState.READY
        logger.info("ready %s: %d resources", self.slug, len(table))
        self._count_play()

    def _fail(self, ticket: LoadTicket, err: ArchiveLoadError) -> None:
        if not self._is_current(ticket):
            logger.debug("ignoring failure of superseded load %r: %s", ticket, err)
            return
        logger.warning("failed to load %s: %s", self.slug, err)
        self.state = PlayState.ERROR
        self.error = err

    def _drop(self, arena: Optional[HandleArena]) -> None:
        if arena is not None:
            self._arenas.release(arena.id)

    def _release(self) -> None:
        if self._arena is not None:
            self._arenas.release(self._arena.id)
        self._arena = None
        self.table = None
        self.document_url = None

    # -- play tracking --

    def _count_play(self) -> None:
        if self.play_counted:
            return
        self.play_counted = True
        if self._notifier is None:
            return
        threading.Thread(target=self._notify, daemon=True).start()

    def _notify(self) -> None:
        try:
            self._notifier(self.slug)
        except Exception as e:
            logger.warning("failed to track play for %s: %s", self.slug, e)


class HostRegistry:
    """Mounted hosts by session id.

    Every lookup marks a session as active (the player page polls its session
    state while open). Past ``max_hosts`` the longest-idle sessions are torn down.
    """

    def __init__(
        self,
        arenas: ArenaRegistry,
        notifier: Optional[Notifier] = None,
        max_hosts: int = 64,
        fetcher: Callable[..., bytes] = fetch_bundle,
        timeout: float = 30.0,
    ):
        self.arenas = arenas
        self._notifier = notifier
        self._max = max(1, max_hosts)
        self._fetcher = fetcher
        self._timeout = timeout
        # least recently active first
        self._hosts: "OrderedDict[str, SandboxHost]" = OrderedDict()
        self._lock = threading.Lock()

    def mount(self, slug: str, title: str) -> Tuple[str, SandboxHost]:
        host = SandboxHost(slug, title, self.arenas, notifier=self._notifier,
                           fetcher=self._fetcher, timeout=self._timeout)
        sid = new_id()
        evicted: List[Tuple[str, SandboxHost]] = []
        with self._lock:
            self._hosts[sid] = host
            while len(self._hosts) > self._max:
                evicted.append(self._hosts.popitem(last=False))
        for old_sid, old in evicted:
            logger.warning("session limit (%d) reached, closing idle session %s (%s, %s)",
                           self._max, old_sid, old.slug, old.state.value)
            old.teardown()
        return sid, host

    def get(self, sid: str) -> Optional[SandboxHost]:
        with self._lock:
            host = self._hosts.get(sid)
            if host is not None:
                self._hosts.move_to_end(sid)
            return host

    def unmount(self, sid: str) -> bool:
        with self._lock:
            host = self._hosts.pop(sid, None)
        if host is None:
            return False
        host.teardown()
        return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._hosts)
