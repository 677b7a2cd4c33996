#!/usr/bin/env python3
"""
Path helpers for upload destinations, download URLs and download lookups.
"""

import re
from pathlib import Path
from typing import Optional
from urllib.parse import quote

_UNSAFE_CHARS = re.compile(r'[^A-Za-z0-9._-]')

# Characters encodeURIComponent leaves alone besides [A-Za-z0-9_.-~]
_URL_SAFE = "!'()*"


def sanitize_path(path: str) -> str:
    """Sanitize a client supplied relative path to prevent directory traversal.

    Backslashes count as separators. Empty, ``.`` and ``..`` segments are
    dropped and every character outside ``[A-Za-z0-9._-]`` becomes ``_``.
    An empty result means the input named nothing usable.
    """
    parts = []
    for part in path.replace('\\', '/').split('/'):
        if not part or part in ('.', '..'):
            continue
        parts.append(_UNSAFE_CHARS.sub('_', part))
    return '/'.join(parts)


def encode_url_path(rel_path: str) -> str:
    """Percent-encode each segment of a relative path, keeping the separators"""
    return '/'.join(quote(segment, safe=_URL_SAFE) for segment in rel_path.split('/'))


def resolve_within(root: Path, rel_path: str) -> Optional[Path]:
    """Resolve a decoded request path under ``root``.

    Returns None for hidden segments or anything outside the root.
    """
    segments = [s for s in rel_path.replace('\\', '/').split('/') if s]
    if not segments or any(s.startswith('.') for s in segments):
        return None

    root = root.resolve()
    target = root.joinpath(*segments).resolve()
    if root not in target.parents:
        return None
    return target
