from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Sequence, Union

from cv_matcher.models import UploadedFile

logger = logging.getLogger(__name__)

OnChange = Callable[[List[UploadedFile]], None]


class FileIntake:
    """
    Client-side staging area for a batch of files.

    Drag-and-drop (`drop`) and click-to-browse (`browse`) both go through
    `add`, so they apply the same type and size checks. Once the batch is
    full, further files are ignored; staged files are never evicted.
    """

    def __init__(
        self,
        accepted_types: Optional[Sequence[str]] = None,
        max_files: int = 10,
        max_size_mb: float = 10,
        on_change: Optional[OnChange] = None,
    ):
        self.accepted_types = [t.lower() for t in (accepted_types or [])]
        self.max_files = max_files
        self.max_size_mb = max_size_mb
        self.on_change = on_change
        self._files: List[UploadedFile] = []

    @property
    def files(self) -> List[UploadedFile]:
        return list(self._files)

    @property
    def max_size_bytes(self) -> int:
        return int(self.max_size_mb * 1024 * 1024)

    def __len__(self) -> int:
        return len(self._files)

    def _type_ok(self, f: UploadedFile) -> bool:
        if not self.accepted_types:
            return True
        mime = (f.mime_type or "").lower()
        return mime in self.accepted_types or f.extension in self.accepted_types

    def validate(self, f: UploadedFile) -> bool:
        return self._type_ok(f) and f.size_bytes <= self.max_size_bytes

    def _emit(self) -> None:
        if self.on_change is not None:
            self.on_change(self.files)

    def add(self, candidates: Iterable[UploadedFile]) -> List[UploadedFile]:
        valid = []
        for f in candidates:
            if self.validate(f):
                valid.append(f)
            else:
                logger.debug("Rejected %s (%s, %d bytes)", f.name, f.mime_type or "unknown type", f.size_bytes)

        free = max(self.max_files - len(self._files), 0)
        if len(valid) > free:
            logger.debug("Dropping %d files over the %d file limit", len(valid) - free, self.max_files)
            valid = valid[:free]

        if valid:
            self._files.extend(valid)
            self._emit()
        return valid

    def drop(self, candidates: Iterable[UploadedFile]) -> List[UploadedFile]:
        return self.add(candidates)

    def browse(self, paths: Iterable[Union[str, Path]]) -> List[UploadedFile]:
        return self.add(UploadedFile.from_path(p) for p in paths)

    def remove(self, index: int) -> None:
        if not 0 <= index < len(self._files):
            return
        del self._files[index]
        self._emit()

    def clear(self) -> None:
        self._files = []
        self._emit()
