#!/usr/bin/env python3
"""
Upload and delete handlers.

Uploads are written with aiofiles to hidden staging files beside their
destination and moved into place only once every file of the request has
been received within the size limit. A rejected request leaves the upload
root as it was.
"""

import logging
import posixpath
import secrets
import stat
import time
from pathlib import Path
from typing import Any, Dict, List, Tuple

import aiofiles
import aiofiles.os
from starlette.datastructures import UploadFile

from drop_config import ServerConfig
from drop_errors import (
    DropError,
    InternalError,
    NotFound,
    SizeLimitExceeded,
    UnsupportedOperation,
    ValidationError,
)
from path_sanitizer import encode_url_path, sanitize_path

logger = logging.getLogger(__name__)

CONFLICT_MESSAGE = "Destination conflicts with an existing file or folder"


def unique_name(base: str) -> str:
    """Prefix a file name with a millisecond timestamp and a random token"""
    return f"{int(time.time() * 1000)}-{secrets.token_hex(4)}-{base}"


class UploadHandler:
    """
    Stores uploaded files under the upload root.

    With ``nested_paths`` the client's relative path is kept (sanitized) and
    an existing file at the destination is replaced. Without it every file
    lands directly in the root under a unique prefixed name.
    """

    def __init__(self, config: ServerConfig, url_prefix: str = "/uploads"):
        self.root = Path(config.upload_dir)
        self.nested = config.nested_paths
        self.max_file_size = config.max_file_size
        self.chunk_size = config.chunk_size
        self.url_prefix = url_prefix.rstrip('/')

    def destination_for(self, original_name: str) -> str:
        """Sanitized path, relative to the root, an upload will be stored at"""
        rel = sanitize_path(original_name or '')
        if not rel:
            raise ValidationError(f"Invalid file name: {original_name!r}")

        if not self.nested:
            return unique_name(posixpath.basename(rel))

        # Hidden entries are neither listed nor served
        if any(segment.startswith('.') for segment in rel.split('/')):
            raise ValidationError(f"Hidden file names are not allowed: {original_name!r}")
        return rel

    async def _missing_dirs(self, directory: Path) -> List[Path]:
        """Ancestors of ``directory`` (itself included) that do not exist yet, outermost first"""
        missing = []
        while directory != self.root and not await aiofiles.os.path.exists(directory):
            missing.append(directory)
            directory = directory.parent
        return list(reversed(missing))

    async def store(self, uploads: List[UploadFile]) -> List[Dict[str, Any]]:
        """Store every upload of one request, all or nothing"""
        if not uploads:
            raise ValidationError("No files uploaded")

        staged: List[Tuple[Path, Path]] = []
        created: List[Path] = []
        stored = []
        try:
            for upload in uploads:
                rel = self.destination_for(upload.filename)
                final_path = self.root / rel
                if await aiofiles.os.path.isdir(final_path):
                    raise ValidationError(CONFLICT_MESSAGE)
                missing = await self._missing_dirs(final_path.parent)
                created.extend(missing)
                await aiofiles.os.makedirs(final_path.parent, exist_ok=True)

                tmp_path = final_path.with_name(f".{final_path.name}.{secrets.token_hex(4)}.part")
                staged.append((tmp_path, final_path))
                size = await self._write(upload, tmp_path)

                stored.append({
                    "name": final_path.name,
                    "originalName": upload.filename,
                    "size": size,
                    "url": f"{self.url_prefix}/{encode_url_path(rel)}"
                })

            for tmp_path, final_path in staged:
                await aiofiles.os.replace(tmp_path, final_path)
        except DropError:
            await self._discard(staged, created)
            raise
        except (FileExistsError, NotADirectoryError, IsADirectoryError) as e:
            logger.warning(f"Upload destination conflict: {e}")
            await self._discard(staged, created)
            raise ValidationError(CONFLICT_MESSAGE) from e
        except OSError as e:
            logger.exception(f"Could not store upload: {e}")
            await self._discard(staged, created)
            raise InternalError("Could not store files") from e

        for info in stored:
            logger.info(f"Stored {info['originalName']!r} as {info['url']} ({info['size']} bytes)")
        return stored

    async def _write(self, upload: UploadFile, tmp_path: Path) -> int:
        size = 0
        async with aiofiles.open(tmp_path, 'wb') as f:
            while True:
                chunk = await upload.read(self.chunk_size)
                if not chunk:
                    break
                size += len(chunk)
                if size > self.max_file_size:
                    logger.warning(f"Rejected {upload.filename!r}: larger than {self.max_file_size} bytes")
                    raise SizeLimitExceeded(f"File too large: {upload.filename}")
                await f.write(chunk)
        return size

    async def _discard(self, staged: List[Tuple[Path, Path]], created: List[Path]) -> None:
        for tmp_path, _ in staged:
            try:
                await aiofiles.os.remove(tmp_path)
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.warning(f"Could not remove staging file {tmp_path}: {e}")

        # Deepest first; folders that gained other content stay
        for directory in reversed(created):
            try:
                await aiofiles.os.rmdir(directory)
            except OSError:
                pass


class DeleteHandler:
    """
    Removes single files from the upload root.

    With ``nested_paths`` the target is a sanitized relative path; otherwise
    only the last component of the given name is used.
    """

    def __init__(self, config: ServerConfig):
        self.root = Path(config.upload_dir)
        self.nested = config.nested_paths

    def target_for(self, raw: str) -> str:
        raw = raw or ''
        if self.nested:
            rel = sanitize_path(raw)
            if not rel:
                raise ValidationError("Path required")
            return rel

        rel = sanitize_path(posixpath.basename(raw.replace('\\', '/')))
        if not rel:
            raise ValidationError("File name required")
        return rel

    async def delete(self, raw: str) -> str:
        """Delete one file, returning its relative path"""
        rel = self.target_for(raw)
        target = self.root / rel

        try:
            st = await aiofiles.os.stat(target)
            if stat.S_ISDIR(st.st_mode):
                raise UnsupportedOperation()
            await aiofiles.os.remove(target)
        except (FileNotFoundError, NotADirectoryError):
            raise NotFound()
        except OSError as e:
            logger.exception(f"Could not delete {rel}: {e}")
            raise InternalError("Could not delete file") from e

        logger.info(f"Deleted {rel}")
        return rel
