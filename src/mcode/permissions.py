"""Folder-level authorization for read-oriented tools."""

import os
from typing import Any, Callable, Dict, Iterable, List, Optional

from .logger import get_logger

log = get_logger("permissions")


def normalize(path: str) -> str:
    return os.path.abspath(os.path.expanduser(path))


def is_within(target: str, folder: str) -> bool:
    """True if ``target`` is ``folder`` or one of its descendants."""
    if target == folder:
        return True
    try:
        rel = os.path.relpath(target, folder)
    except ValueError:
        # Different drives on Windows
        return False
    return rel != os.pardir and not rel.startswith(os.pardir + os.sep)


class PermissionGate:
    """Tracks approved folders; approving a folder approves its whole subtree.

    ``on_change`` receives the updated folder list whenever a grant or
    revoke happens, so the caller can persist it.
    """

    def __init__(
        self,
        approved: Optional[Iterable[str]] = None,
        on_change: Optional[Callable[[List[str]], None]] = None,
    ):
        self._approved: List[str] = []
        for path in approved or []:
            path = normalize(path)
            if path not in self._approved:
                self._approved.append(path)
        self._on_change = on_change

    def folders(self) -> List[str]:
        return list(self._approved)

    def check(self, path: str) -> bool:
        target = normalize(path)
        return any(is_within(target, folder) for folder in self._approved)

    def grant(self, path: str) -> str:
        folder = normalize(path)
        if folder not in self._approved:
            self._approved.append(folder)
            log.info("Granted folder access: %s", folder)
            self._persist()
        return folder

    def revoke(self, path: str) -> bool:
        folder = normalize(path)
        if folder not in self._approved:
            return False
        self._approved.remove(folder)
        log.info("Revoked folder access: %s", folder)
        self._persist()
        return True

    def _persist(self) -> None:
        if self._on_change:
            self._on_change(self.folders())

    def request(self, path: str, ask: Callable[[str], bool]) -> bool:
        """Return True if ``path`` is approved, prompting via ``ask`` when it is not."""
        if self.check(path):
            return True
        folder = normalize(path)
        if ask(folder):
            self.grant(folder)
            return True
        log.info("Folder access denied: %s", folder)
        return False


def folder_for(tool_name: str, arguments: Dict[str, Any]) -> str:
    """Folder a read-oriented call needs: a file's directory or the listed directory."""
    path = str(arguments.get("path") or ".")
    if tool_name == "list_files":
        return path
    return os.path.dirname(path) or "."
