#!/usr/bin/env python3
"""
File Tree Lister

Walks the upload root and describes its contents for the listing endpoint.
Hidden entries (leading ``.``) are skipped, which also hides in-flight
upload staging files.
"""

import os
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Union

from pydantic import BaseModel

from path_sanitizer import encode_url_path


# ============================================================================
# Data Models
# ============================================================================

class FileEntry(BaseModel):
    """One node of the nested listing"""
    name: str
    path: str
    isDir: bool
    size: Optional[int] = None
    uploadedAt: Optional[str] = None
    url: Optional[str] = None
    children: Optional[List["FileEntry"]] = None


FileEntry.model_rebuild()


class FlatFileEntry(BaseModel):
    """One file directly inside the upload root"""
    name: str
    size: int
    uploadedAt: str
    url: str


def uploaded_at(st: os.stat_result) -> str:
    """Creation time where the platform records it, else modification time"""
    timestamp = getattr(st, 'st_birthtime', None) or st.st_mtime
    moment = datetime.fromtimestamp(timestamp, tz=timezone.utc)
    return moment.isoformat(timespec='milliseconds').replace('+00:00', 'Z')


# ============================================================================
# Lister
# ============================================================================

class FileTreeLister:
    """
    Lists an upload root.

    Args:
        root: Upload root directory
        url_prefix: Route prefix the root is downloadable under
    """

    def __init__(self, root: Union[str, Path], url_prefix: str = "/uploads"):
        self.root = Path(root)
        self.url_prefix = url_prefix.rstrip('/')

    def download_url(self, rel_path: str) -> str:
        return f"{self.url_prefix}/{encode_url_path(rel_path)}"

    def list_tree(self) -> List[FileEntry]:
        """Recursive listing of the whole root.

        Any OSError (most importantly an unreadable root) propagates so the
        caller never reports a partial tree.
        """
        return self._collect('')

    def _collect(self, rel: str) -> List[FileEntry]:
        directory = self.root / rel if rel else self.root
        with os.scandir(directory) as it:
            entries = sorted(it, key=lambda e: e.name)

        results = []
        for entry in entries:
            if entry.name.startswith('.'):
                continue
            rel_path = f"{rel}/{entry.name}" if rel else entry.name

            if entry.is_dir(follow_symlinks=False):
                results.append(FileEntry(
                    name=entry.name,
                    path=rel_path,
                    isDir=True,
                    children=self._collect(rel_path)
                ))
            elif entry.is_file():
                st = entry.stat()
                results.append(FileEntry(
                    name=entry.name,
                    path=rel_path,
                    isDir=False,
                    size=st.st_size,
                    uploadedAt=uploaded_at(st),
                    url=self.download_url(rel_path)
                ))
        return results

    def list_flat(self) -> List[FlatFileEntry]:
        """Regular files directly inside the root, newest first"""
        files = []
        with os.scandir(self.root) as it:
            for entry in it:
                if entry.name.startswith('.') or not entry.is_file():
                    continue
                st = entry.stat()
                files.append(FlatFileEntry(
                    name=entry.name,
                    size=st.st_size,
                    uploadedAt=uploaded_at(st),
                    url=self.download_url(entry.name)
                ))

        # ISO timestamps in one timezone sort chronologically
        files.sort(key=lambda f: (f.uploadedAt, f.name), reverse=True)
        return files
