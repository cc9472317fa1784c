# cardmirror/core/writer.py

import os
import shutil
from pathlib import Path
from typing import Union

import httpx

from .errors import AlreadyExistsError, NetworkError, NotFoundError
from .logging import get_logger

logger = get_logger(__name__)

PathLike = Union[str, os.PathLike]

class ArtifactWriter:
    """
    Moves bytes into the output tree. Every write creates its destination
    exclusively: an existing file is never truncated or replaced.
    """
    def __init__(self, client: httpx.AsyncClient, chunk_size: int = 64 * 1024):
        self.client = client
        self.chunk_size = chunk_size

    async def write_remote_file(self, url: str, path: PathLike) -> None:
        """Streams the body at `url` into a new file at `path`."""
        await self._download(url, Path(path), require_image=False)

    async def write_remote_image(self, url: str, path: PathLike) -> None:
        """Like write_remote_file, but the response must be an image."""
        await self._download(url, Path(path), require_image=True)

    def write_local_copy(self, src: PathLike, dest: PathLike) -> None:
        """Copies an already extracted file into place."""
        src, dest = Path(src), Path(dest)
        if not src.is_file():
            raise NotFoundError(f"Source file not found: {src}")
        with open(src, "rb") as fin:
            fout = _open_exclusive(dest)
            try:
                with fout:
                    shutil.copyfileobj(fin, fout, self.chunk_size)
            except BaseException:
                _discard(dest)
                raise
        logger.debug(f"Copied {src} -> {dest}")

    def write_bytes(self, data: bytes, path: PathLike) -> None:
        """Writes a small in-memory document (card.json) to a new file."""
        write_new_file(data, path)

    async def _download(self, url: str, path: Path, require_image: bool) -> None:
        if path.exists():
            raise AlreadyExistsError(f"Refusing to overwrite {path}")

        logger.debug(f"Downloading {url} -> {path}")
        created = False
        try:
            async with self.client.stream("GET", url, follow_redirects=True) as response:
                if response.status_code >= 400:
                    raise NetworkError(f"GET {url} failed with HTTP {response.status_code}")
                content_type = response.headers.get("content-type", "")
                if require_image and not content_type.startswith("image/"):
                    raise NetworkError(f"Expected an image from {url}, got '{content_type or 'no content type'}'")

                with _open_exclusive(path) as f:
                    created = True
                    async for chunk in response.aiter_bytes(self.chunk_size):
                        f.write(chunk)
        except httpx.HTTPError as e:
            if created:
                _discard(path)
            raise NetworkError(f"Download of {url} failed: {e}") from e
        except BaseException:
            # includes cancellation; a truncated file would count as present
            if created:
                _discard(path)
            raise


def _open_exclusive(path: Path):
    try:
        return open(path, "xb")
    except FileExistsError as e:
        raise AlreadyExistsError(f"Refusing to overwrite {path}") from e


def write_new_file(data: bytes, path: PathLike) -> None:
    """Creates `path` holding `data`; fails if it already exists."""
    path = Path(path)
    f = _open_exclusive(path)
    try:
        with f:
            f.write(data)
    except BaseException:
        _discard(path)
        raise


def _discard(path: Path) -> None:
    """Removes a partially written file so the next run retries it."""
    try:
        path.unlink()
    except FileNotFoundError:
        pass
