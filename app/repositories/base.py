"""JSON-file persistence shared by the local repositories."""
import json
import logging
import os
import tempfile
import threading
from typing import Any, Optional


class BaseRepository:
    """One JSON document on disk, or none at all.

    The session file is read by the CLI on every run and written by the GUI
    from several request threads, so writes replace the file in one
    ``os.replace`` and callers hold ``self._lock`` around read-modify-write.
    A ``file_path`` of ``None`` keeps everything in memory (tests, throwaway
    sessions).
    """

    def __init__(self, file_path: Optional[str]) -> None:
        self._path = file_path
        self._lock = threading.RLock()
        self._log = logging.getLogger(f'gamerscove.repository.{type(self).__name__}')

    @property
    def path(self) -> Optional[str]:
        return self._path

    def _load(self, default: Any) -> Any:
        """Read the document, or *default* when there is no usable file."""
        if not self._path or not os.path.exists(self._path):
            return default
        try:
            with open(self._path, 'r') as fh:
                return json.load(fh)
        except (json.JSONDecodeError, OSError) as exc:
            self._log.warning("Ignoring unreadable %s: %s", self._path, exc)
            return default

    def _save(self, data: Any) -> None:
        """Replace the document with *data*; a crash mid-write leaves the old file."""
        if not self._path:
            return
        target_dir = os.path.dirname(os.path.abspath(self._path))
        fd, staging = tempfile.mkstemp(dir=target_dir, prefix='.session-', suffix='.tmp')
        try:
            with os.fdopen(fd, 'w') as fh:
                json.dump(data, fh, indent=2)
            os.replace(staging, self._path)
        except Exception:
            if os.path.exists(staging):
                os.unlink(staging)
            raise
        self._log.debug("Saved %s", self._path)
