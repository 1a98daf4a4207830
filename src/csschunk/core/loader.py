"""Executable model of the generated CSS chunk loader.

The state machine mirrors ``render_require_ensure``: one shared state map per
page, ``0`` for loaded chunks, the pending task for chunks in flight, and no
entry for chunks that were never requested or whose load failed.

Requesters get a shielded handle on the pending task, so a requester that
gives up does not stop the fetch for the others. Alternate skin sheets are
inserted with the chunk but do not hold up its completion.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, Iterator, Mapping
from urllib.parse import urljoin

from csschunk.core.runtime import CHUNK_LOAD_ERROR_CODE, FLAG_BASE, FLAG_SKINNED
from csschunk.core.skins import SkinMap

logger = logging.getLogger(__name__)

LOADED = 0
_STYLESHEET_RELS = ("stylesheet", "alternate stylesheet")


class CssChunkLoadError(Exception):
    code = CHUNK_LOAD_ERROR_CODE

    def __init__(self, chunk_id: str, request: str) -> None:
        super().__init__(f"Loading CSS chunk {chunk_id} failed.\n({request})")
        self.chunk_id = chunk_id
        self.request = request


@dataclass
class StyleTag:
    tag_name: str = "link"
    href: str | None = None
    data_href: str | None = None
    rel: str = "stylesheet"
    title: str = ""
    disabled: bool = False
    cross_origin: str | None = None


class StyleDocument:
    """In-memory document head; ``fetch`` raises when a tag fails to load."""

    def __init__(
        self,
        fetch: Callable[[StyleTag], Awaitable[None]],
        *,
        origin: str = "",
        tags: Iterable[StyleTag] = (),
    ) -> None:
        self.head: list[StyleTag] = list(tags)
        self.origin = origin
        self.inserted: list[StyleTag] = []
        self._fetch = fetch

    def stylesheet_hrefs(self) -> Iterator[str]:
        for tag in self.head:
            if tag.tag_name == "link" and tag.rel not in _STYLESHEET_RELS:
                continue
            if tag.tag_name not in ("link", "style"):
                continue
            href = tag.data_href or tag.href
            if href:
                yield href

    def is_same_origin(self, href: str) -> bool:
        return urljoin(self.origin + "/", href).startswith(self.origin + "/")

    def insert(self, tag: StyleTag) -> None:
        self.head.append(tag)
        self.inserted.append(tag)

    async def load(self, tag: StyleTag) -> None:
        await self._fetch(tag)

    def remove(self, tag: StyleTag) -> None:
        self.head = [existing for existing in self.head if existing is not tag]


class CssChunkLoader:
    def __init__(
        self,
        document: StyleDocument,
        *,
        css_chunks: Mapping[str, int],
        href_for: Callable[[str, str], str],
        skin_map: SkinMap | None = None,
        public_path: str = "",
        cross_origin_loading: str | None = None,
        active_skin: Callable[[], str | None] | None = None,
        default_skin: str = "default",
        installed: Mapping[str, Any] | None = None,
    ) -> None:
        self.document = document
        self.css_chunks = {str(key): value for key, value in css_chunks.items()}
        self.href_for = href_for
        self.skin_map = skin_map
        self.public_path = public_path
        self.cross_origin_loading = cross_origin_loading
        self.default_skin = default_skin
        self.installed: dict[str, Any] = dict(installed or {})
        self.alternates: set[asyncio.Task[None]] = set()
        self._active_skin = active_skin

    def active_skin(self) -> str:
        selected = self._active_skin() if self._active_skin is not None else None
        return selected or self.default_skin

    def request_load(self, chunk_id: Any) -> asyncio.Future[None]:
        key = str(chunk_id)
        loop = asyncio.get_running_loop()
        state = self.installed.get(key)
        if isinstance(state, asyncio.Future):
            if not state.done():
                return asyncio.shield(state)
            # Cancelled before it ever ran, so nothing cleaned up after it.
            del self.installed[key]
        elif key in self.installed and state == LOADED:
            return self._completed(loop)
        if not self.css_chunks.get(key):
            return self._completed(loop)

        task = loop.create_task(self._load(key))
        self.installed[key] = task
        return asyncio.shield(task)

    async def wait_alternates(self) -> None:
        """Wait until every alternate skin sheet started so far has settled."""
        while self.alternates:
            await asyncio.gather(*list(self.alternates))

    @staticmethod
    def _completed(loop: asyncio.AbstractEventLoop) -> asyncio.Future[None]:
        done: asyncio.Future[None] = loop.create_future()
        done.set_result(None)
        return done

    def _sheet_requests(self, chunk_id: str) -> list[tuple[str, bool]]:
        flags = self.css_chunks[chunk_id]
        requests: list[tuple[str, bool]] = []
        if self.skin_map is None or flags & FLAG_BASE:
            requests.append(("", False))
        if self.skin_map is not None and flags & FLAG_SKINNED:
            active = self.active_skin()
            for skin in self.skin_map.skins_for(chunk_id):
                requests.append((skin, skin != active))
        return requests

    async def _load(self, chunk_id: str) -> None:
        primary: list[StyleTag] = []
        try:
            for skin, alternate in self._sheet_requests(chunk_id):
                tag = self._insert_tag(chunk_id, skin, alternate=alternate)
                if tag is None:
                    continue
                if alternate:
                    task = asyncio.get_running_loop().create_task(
                        self._settle(chunk_id, tag, alternate=True)
                    )
                    self.alternates.add(task)
                    task.add_done_callback(self.alternates.discard)
                else:
                    primary.append(tag)

            results = await asyncio.gather(
                *(self._settle(chunk_id, tag, alternate=False) for tag in primary),
                return_exceptions=True,
            )
            for result in results:
                if isinstance(result, BaseException):
                    raise result
        except BaseException:
            for tag in primary:
                self.document.remove(tag)
            self.installed.pop(chunk_id, None)
            raise
        self.installed[chunk_id] = LOADED

    def _insert_tag(self, chunk_id: str, skin: str, *, alternate: bool) -> StyleTag | None:
        href = self.href_for(chunk_id, skin)
        full_href = self.public_path + href
        for existing in self.document.stylesheet_hrefs():
            if existing in (href, full_href):
                return None

        tag = StyleTag(
            href=full_href,
            rel="alternate stylesheet" if alternate else "stylesheet",
            title=skin,
        )
        if self.cross_origin_loading and not self.document.is_same_origin(full_href):
            tag.cross_origin = self.cross_origin_loading
        self.document.insert(tag)
        return tag

    async def _settle(self, chunk_id: str, tag: StyleTag, *, alternate: bool) -> None:
        try:
            await self.document.load(tag)
        except asyncio.CancelledError:
            self.document.remove(tag)
            raise
        except Exception as exc:
            self.document.remove(tag)
            if alternate:
                logger.warning(
                    "Loading alternate skin %s of CSS chunk %s failed (%s): %s",
                    tag.title,
                    chunk_id,
                    tag.href,
                    exc,
                )
                return
            raise CssChunkLoadError(chunk_id, tag.href or "") from exc
        if alternate:
            tag.disabled = True
