"""Chunked uploads into temporary files, each identified by the MD5 of what was sent so far."""

from __future__ import annotations

import hashlib
import logging
import os
import random
import string
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, List, Optional, Union

log = logging.getLogger(__name__)

CHARSET = string.ascii_lowercase + string.ascii_uppercase + string.digits
FILENAME_LENGTH = 8
TMP_FILE_EXTENSION = ".tmp"
MAX_FILE_UPLOADS = 32

PathLike = Union[str, os.PathLike]


class UploadError(Exception):
    """An upload step failed; ``code`` tells which."""

    INVALID_PARAMETERS = 2
    NO_FILE = 3
    WRITE_FAILED = 4

    def __init__(self, code: int, message: str) -> None:
        self.code = code
        super().__init__(message)


@dataclass
class Upload:
    """One file being uploaded: where it goes, its current blob ID and its open file."""

    filename: Path
    blob_id: bytes
    file: Optional[BinaryIO] = None


def _md5(data: bytes = b""):
    return hashlib.md5(data, usedforsecurity=False)


def generate_random_filename(path: PathLike, rng: Optional[random.Random] = None) -> Path:
    """A random temporary file name inside ``path``."""
    chooser = rng if rng is not None else random.SystemRandom()
    stem = "".join(chooser.choice(CHARSET) for _ in range(FILENAME_LENGTH))
    return Path(path) / f"{stem}{TMP_FILE_EXTENSION}"


def delete_tmp_files(directory: PathLike) -> List[Path]:
    """Delete every file in ``directory`` whose name contains ``.tmp``; return those deleted."""
    deleted: List[Path] = []
    try:
        entries = list(os.scandir(directory))
    except OSError:
        log.info("failed to open directory %s", directory)
        return deleted
    for entry in entries:
        if not entry.is_file() or ".tmp" not in entry.name:
            continue
        path = Path(directory) / entry.name
        try:
            path.unlink()
        except OSError:
            log.info("failed to delete file %s", path)
        else:
            log.info("deleted file %s", path)
            deleted.append(path)
    return deleted


class BlobUploads:
    """Tracks uploads into ``tmp_dir``.

    A blob starts with a seed whose MD5 is its first ID; every appended chunk
    is written to the blob's file and the ID becomes the MD5 of the seed and
    all chunks so far.
    """

    def __init__(
        self,
        tmp_dir: PathLike,
        max_uploads: int = MAX_FILE_UPLOADS,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.tmp_dir = Path(tmp_dir)
        self.max_uploads = max_uploads
        self.rng = rng
        self.uploads: List[Upload] = []
        self._complete = _md5()

    def __enter__(self) -> "BlobUploads":
        return self

    def __exit__(self, *exc_info) -> None:
        self._close_all()

    def _close_all(self) -> None:
        for upload in self.uploads:
            if upload.file is not None:
                upload.file.close()
                upload.file = None

    def _find(self, blob_id: bytes) -> Optional[Upload]:
        blob_id = bytes(blob_id)
        return next((u for u in self.uploads if u.blob_id == blob_id), None)

    def _update_last(self, blob_id: bytes) -> None:
        if self.uploads:
            self.uploads[-1].blob_id = bytes(blob_id)

    def purge(self) -> List[Path]:
        """Delete old temporary files and forget every upload."""
        log.info("starting file upload")
        self._close_all()
        deleted = delete_tmp_files(self.tmp_dir)
        self.uploads = []
        return deleted

    def seed(self, seed: bytes) -> bytes:
        """Start a new blob from ``seed`` and return its first ID."""
        self._complete = _md5()
        if seed is None:
            raise UploadError(UploadError.INVALID_PARAMETERS, "seed is missing")
        seed = bytes(seed)
        blob_id = _md5(seed).digest()
        self._complete.update(seed)

        if self.uploads and self.uploads[-1].file is not None:
            self.finish(self.uploads[-1].blob_id)

        filename = generate_random_filename(self.tmp_dir, self.rng)
        handle = filename.open("wb")
        if len(self.uploads) < self.max_uploads:
            self.uploads.append(Upload(filename, blob_id, handle))
        else:
            log.error("too many uploads, %s is not recorded", filename)
            handle.close()
        return blob_id

    def append(self, data: bytes, blob_id: bytes) -> bytes:
        """Write ``data`` to the current blob and return its new ID."""
        if data is None or blob_id is None:
            raise UploadError(UploadError.INVALID_PARAMETERS, "data or blob ID is missing")
        data = bytes(data)
        self._complete.update(data)
        new_id = self._complete.copy().digest()
        self._update_last(new_id)

        upload = self._find(new_id)
        if upload is None or upload.file is None:
            raise UploadError(UploadError.NO_FILE, "no open file for this blob")
        try:
            upload.file.write(data)
            upload.file.flush()
        except OSError as exc:
            raise UploadError(
                UploadError.WRITE_FAILED, f"failed to write {len(data)} bytes: {exc}"
            ) from exc
        return new_id

    def finish(self, blob_id: bytes) -> bool:
        """Close the file of ``blob_id``; return whether there was one to close."""
        self._update_last(blob_id)
        upload = self._find(blob_id)
        if upload is None or upload.file is None:
            return False
        upload.file.close()
        upload.file = None
        return True

    def filename_for(self, blob_id: bytes) -> Optional[Path]:
        """Temporary file holding the blob ``blob_id``, or None."""
        upload = self._find(blob_id)
        return None if upload is None else upload.filename

    def complete_digest(self) -> bytes:
        """MD5 of the seed and every chunk appended since."""
        return self._complete.copy().digest()