"""
Served-root path resolution.

Request filenames come straight off the wire. They are joined to the
served root and canonicalized; anything that resolves outside the root
is refused with PermissionError, which maps to ACCESS_VIOLATION.
"""

from pathlib import Path
from typing import Union


def resolve_path(root: Union[str, Path], filename: str) -> Path:
    """
    Map a requested filename to a path inside `root`.

    Leading separators are stripped, so "/boot/pxelinux.0" is served from
    "<root>/boot/pxelinux.0".

    Raises:
        PermissionError: the name is empty or escapes the root
    """
    root_path = Path(root).resolve()
    relative = filename.replace('\\', '/').lstrip('/')
    if not relative or '\x00' in relative:
        raise PermissionError(f"Invalid filename: {filename!r}")

    candidate = (root_path / relative).resolve()
    if root_path not in candidate.parents:
        raise PermissionError(f"Path escapes served root: {filename!r}")

    return candidate
