"""Runtime asset loader.

Requests are registered on a :class:`LoadBatch` obtained from
:meth:`LoaderContext.new_batch`. Starting the batch dispatches every request
at once and resolves them either from an embedded asset map (the ``FILES``
manifest produced at build time) or over HTTP relative to a root path.

A batch always settles: failed or timed out requests are recorded in the
returned :class:`BatchResult` instead of stalling completion.
"""

from __future__ import annotations

import asyncio
import base64
import io
import itertools
import logging
import random
import urllib.request
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Mapping, Optional, Tuple

from PIL import Image

from demopack.errors import AssetNotFoundError, LoaderError, LoaderStateError


logger = logging.getLogger(__name__)

MIME_TYPES: Dict[str, str] = {
    "jpg": "image/jpg",
    "jpeg": "image/jpg",
    "png": "image/png",
    "mp3": "audio/mp3",
    "mp4": "video/mp4",
    "svg": "image/svg+xml",
}

Fetch = Callable[[str], Awaitable[bytes]]
ProgressCallback = Callable[[float], None]
CompleteCallback = Callable[["BatchResult"], None]


class RequestKind(Enum):
    MEDIA = "media"
    RAW_TEXT = "raw_text"


class BatchState(Enum):
    ACCUMULATING = "accumulating"
    DRAINING = "draining"
    COMPLETE = "complete"


def mime_type(path: str) -> str:
    """MIME type for ``path``'s extension, or ``""`` when it is not in the table."""
    _, dot, ext = path.rpartition(".")
    if not dot:
        return ""
    return MIME_TYPES.get(ext.lower(), "")


def data_uri(path: str, content: str) -> str:
    return f"data:{mime_type(path)};base64,{content}"


def decode_data_uri(uri: str) -> bytes:
    header, sep, payload = uri.partition(",")
    if not sep or not header.startswith("data:"):
        raise LoaderError(f"Not a data URI: {uri[:32]}")
    if header.endswith(";base64"):
        return base64.b64decode(payload)
    return payload.encode("utf-8")


def _fetch_sync(url: str, timeout: float) -> bytes:
    request = urllib.request.Request(url, method="GET")
    with urllib.request.urlopen(request, timeout=timeout) as response:
        return response.read()


async def http_fetch(url: str, *, timeout: float = 10) -> bytes:
    return await asyncio.to_thread(_fetch_sync, url, timeout)


class MediaConsumer(ABC):
    """Something with a source attribute and a ready signal.

    ``load`` assigns the source and returns once the media is ready.
    """

    src: str = ""

    @abstractmethod
    async def load(self, src: str, fetch: Fetch) -> None:
        ...


class MediaBuffer(MediaConsumer):
    """Media consumer that keeps the raw bytes of whatever it was pointed at."""

    def __init__(self) -> None:
        self.src = ""
        self.data: Optional[bytes] = None
        self.ready = asyncio.Event()

    async def load(self, src: str, fetch: Fetch) -> None:
        self.src = src
        if src.startswith("data:"):
            self.data = decode_data_uri(src)
        else:
            self.data = await fetch(src)
        self.on_data(self.data)
        self.ready.set()

    def on_data(self, data: bytes) -> None:
        pass


class Texture(MediaBuffer):
    """Image-backed media; decodes its bytes with Pillow once loaded."""

    def __init__(self, source_file: str = "") -> None:
        super().__init__()
        self.source_file = source_file
        self.size: Optional[Tuple[int, int]] = None
        self.mode: Optional[str] = None
        self.needs_update = False

    def on_data(self, data: bytes) -> None:
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            self.size = img.size
            self.mode = img.mode


@dataclass
class LoadRequest:
    path: str
    kind: RequestKind
    callback: Optional[Callable[..., None]] = None
    consumer: Optional[MediaConsumer] = None


@dataclass(frozen=True)
class LoadFailure:
    path: str
    error: BaseException


@dataclass(frozen=True)
class BatchResult:
    total: int
    failed: List[LoadFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed

    @property
    def failed_paths(self) -> List[str]:
        return [failure.path for failure in self.failed]


class LoaderContext:
    """Holds the loader's external surface and hands out batches.

    Args:
        root_path: Prefix for network requests.
        embedded_files: Optional ``{path: base64}`` asset map. When present at
            the moment a batch starts, that batch runs in embedded mode.
        fetch: Coroutine used for network requests. Defaults to
            :func:`http_fetch`.
    """

    def __init__(
        self,
        root_path: str = "",
        embedded_files: Optional[Mapping[str, str]] = None,
        fetch: Optional[Fetch] = None,
        cache_buster: Callable[[], float] = random.random,
    ):
        self.root_path = root_path
        self.embedded_files = embedded_files
        self.fetch: Fetch = fetch or http_fetch
        self.cache_buster = cache_buster
        self._ids = itertools.count(1)

    def set_root_path(self, path: str) -> None:
        self.root_path = path

    def new_batch(self) -> "LoadBatch":
        return LoadBatch(self, batch_id=next(self._ids))


class LoadBatch:
    def __init__(self, context: LoaderContext, *, batch_id: int = 0):
        self.context = context
        self.id = batch_id
        self.state = BatchState.ACCUMULATING
        self.total = 0
        self.settled = 0
        self.result: Optional[BatchResult] = None
        self._media: List[LoadRequest] = []
        self._raw_text: List[LoadRequest] = []

    @property
    def pending(self) -> int:
        return len(self._media) + len(self._raw_text)

    def _check_accumulating(self) -> None:
        if self.state is not BatchState.ACCUMULATING:
            raise LoaderStateError(
                f"Batch {self.id} is {self.state.value}; requests can only be added "
                "before it starts."
            )

    def load_media(
        self,
        path: str,
        consumer: MediaConsumer,
        callback: Optional[Callable[[], None]] = None,
    ) -> MediaConsumer:
        self._check_accumulating()
        logger.debug("Batch %s: queued media %s", self.id, path)
        self._media.append(LoadRequest(path, RequestKind.MEDIA, callback, consumer))
        return consumer

    def load_raw_text(self, path: str, callback: Callable[[str], None]) -> None:
        self._check_accumulating()
        logger.debug("Batch %s: queued raw text %s", self.id, path)
        self._raw_text.append(LoadRequest(path, RequestKind.RAW_TEXT, callback))

    def load_texture(
        self, path: str, callback: Optional[Callable[[], None]] = None
    ) -> Texture:
        texture = Texture(source_file=path)

        def _mark_loaded() -> None:
            texture.needs_update = True
            if callback is not None:
                callback()

        self.load_media(path, texture, _mark_loaded)
        return texture

    async def start(
        self,
        onprogress: Optional[ProgressCallback] = None,
        oncomplete: Optional[CompleteCallback] = None,
        *,
        timeout: Optional[float] = None,
    ) -> BatchResult:
        """Dispatch every queued request concurrently and wait for all to settle.

        ``onprogress`` receives ``100 * settled / total`` after each request
        settles. ``oncomplete`` is called exactly once with the batch result,
        immediately when the batch is empty.
        Exceptions raised by ``onprogress`` are logged and do not stop the batch.

        Raises:
            LoaderStateError: If the batch was already started.
        """
        self._check_accumulating()
        self.state = BatchState.DRAINING
        requests = self._raw_text + self._media
        self.total = len(requests)
        embedded = self.context.embedded_files
        logger.debug(
            "Batch %s: starting %d request(s) in %s mode",
            self.id,
            self.total,
            "embedded" if embedded is not None else "network",
        )

        failures: List[LoadFailure] = []
        if requests:
            await asyncio.gather(
                *(
                    self._settle(request, embedded, failures, onprogress, timeout)
                    for request in requests
                )
            )
        return self._complete(failures, oncomplete)

    async def _settle(
        self,
        request: LoadRequest,
        embedded: Optional[Mapping[str, str]],
        failures: List[LoadFailure],
        onprogress: Optional[ProgressCallback],
        timeout: Optional[float],
    ) -> None:
        try:
            await asyncio.wait_for(self._resolve(request, embedded), timeout)
        except Exception as exc:
            logger.warning("Batch %s: failed to load %s: %s", self.id, request.path, exc)
            failures.append(LoadFailure(request.path, exc))
        else:
            logger.debug("Batch %s: finished loading %s", self.id, request.path)
        self.settled += 1
        if onprogress is not None:
            try:
                onprogress(100 * self.settled / self.total)
            except Exception:
                logger.exception("Batch %s: progress callback failed", self.id)

    async def _resolve(
        self, request: LoadRequest, embedded: Optional[Mapping[str, str]]
    ) -> None:
        if request.kind is RequestKind.RAW_TEXT:
            text = await self._resolve_text(request.path, embedded)
            assert request.callback is not None
            request.callback(text)
            return

        assert request.consumer is not None
        await request.consumer.load(self._media_source(request.path, embedded), self.context.fetch)
        if request.callback is not None:
            request.callback()

    async def _resolve_text(
        self, path: str, embedded: Optional[Mapping[str, str]]
    ) -> str:
        if embedded is not None:
            return base64.b64decode(_embedded_content(embedded, path)).decode("utf-8")
        data = await self.context.fetch(self.context.root_path + path)
        return data.decode("utf-8")

    def _media_source(self, path: str, embedded: Optional[Mapping[str, str]]) -> str:
        if embedded is not None:
            return data_uri(path, _embedded_content(embedded, path))
        return f"{self.context.root_path}{path}?_={self.context.cache_buster()}"

    def _complete(
        self, failures: List[LoadFailure], oncomplete: Optional[CompleteCallback]
    ) -> BatchResult:
        self._media.clear()
        self._raw_text.clear()
        self.state = BatchState.COMPLETE
        self.result = BatchResult(total=self.total, failed=failures)
        logger.debug("Batch %s: all loading finished for this run", self.id)
        if oncomplete is not None:
            oncomplete(self.result)
        return self.result


def _embedded_content(embedded: Mapping[str, str], path: str) -> str:
    try:
        return embedded[path]
    except KeyError as exc:
        raise AssetNotFoundError(path) from exc


class Loader:
    """Keeps a batch open for registrations and swaps in a fresh one on start.

    This lets callers queue the next batch while the previous one drains
    without holding batch handles themselves.
    """

    def __init__(self, context: Optional[LoaderContext] = None):
        self.context = context or LoaderContext()
        self.next_batch = self.context.new_batch()

    def load_media(
        self,
        path: str,
        consumer: MediaConsumer,
        callback: Optional[Callable[[], None]] = None,
    ) -> MediaConsumer:
        return self.next_batch.load_media(path, consumer, callback)

    def load_raw_text(self, path: str, callback: Callable[[str], None]) -> None:
        self.next_batch.load_raw_text(path, callback)

    def load_texture(self, path: str, callback: Optional[Callable[[], None]] = None) -> Texture:
        return self.next_batch.load_texture(path, callback)

    async def start(
        self,
        onprogress: Optional[ProgressCallback] = None,
        oncomplete: Optional[CompleteCallback] = None,
        *,
        timeout: Optional[float] = None,
    ) -> BatchResult:
        batch = self.next_batch
        self.next_batch = self.context.new_batch()
        return await batch.start(onprogress, oncomplete, timeout=timeout)
