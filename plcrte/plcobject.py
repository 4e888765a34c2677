"""Services the IDE calls on the runtime: identity, status, start/stop and program upload."""

from __future__ import annotations

import logging
import os
import random
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Tuple, Union

from .blobs import BlobUploads
from .status import PlcStatus, plc_status

log = logging.getLogger(__name__)

MD5_TEXT_SIZE = 33
"""Bytes of a stored MD5 sum: 32 hex digits and a terminating NUL."""

WEB_EXTENSIONS = (".htm", ".html", ".js", ".json", ".css")

PathLike = Union[str, os.PathLike]


def is_web_file(name: str) -> bool:
    """Whether ``name`` ends in an extension served by the web server."""
    dot = name.rfind(".")
    if dot < 0:
        return False
    return name[dot:] in WEB_EXTENSIONS


def _md5_record(md5: str) -> bytes:
    return (md5.encode("ascii", errors="replace") + b"\0")[:MD5_TEXT_SIZE].ljust(
        MD5_TEXT_SIZE, b"\0"
    )


@dataclass(frozen=True)
class PlcPaths:
    """Where the runtime keeps the PLC program, its checksum, uploads and web files."""

    plc_root: Path
    tmp_dir: Path
    http_root: Path
    bin_file: Path
    md5_file: Path

    @classmethod
    def under(cls, base: PathLike) -> "PlcPaths":
        """The standard layout below ``base``."""
        base = Path(base)
        plc_root = base / "plc"
        return cls(
            plc_root=plc_root,
            tmp_dir=base / "tmp",
            http_root=base / "www",
            bin_file=plc_root / "plc.bin",
            md5_file=plc_root / "plc.md5",
        )

    def create(self) -> None:
        """Create the directories of this layout."""
        for directory in (self.plc_root, self.tmp_dir, self.http_root):
            directory.mkdir(parents=True, exist_ok=True)


@dataclass(frozen=True)
class PskId:
    """Identity of the PLC and its pre-shared key."""

    id: str
    psk: str


@dataclass(frozen=True)
class StatusReport:
    """PLC status and the unread log message count of every level."""

    status: PlcStatus
    log_counts: Tuple[int, ...]


@dataclass(frozen=True)
class ExtraFile:
    """A file uploaded alongside the PLC program."""

    fname: str
    blob_id: bytes


def _zero() -> int:
    return 0


def _no_counts() -> Tuple[int, ...]:
    return (0, 0, 0, 0)


def _nothing() -> None:
    return None


class PLCObject:
    """The runtime side of the IDE's PLC object service."""

    def __init__(
        self,
        paths: PlcPaths,
        *,
        plc_id: str = "plc",
        psk: str = "",
        get_state: Callable[[], int] = _zero,
        get_loader_state: Callable[[], int] = _zero,
        start: Callable[[], None] = _nothing,
        stop: Callable[[], None] = _nothing,
        halt: Callable[[], None] = _nothing,
        reload: Callable[[], None] = _nothing,
        erase: Optional[Callable[[], None]] = None,
        log_counts: Callable[[], Iterable[int]] = _no_counts,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.paths = paths
        self.plc_id = plc_id
        self.psk = psk
        self._get_state = get_state
        self._get_loader_state = get_loader_state
        self._start = start
        self._stop = stop
        self._halt = halt
        self._reload = reload
        self._erase = erase if erase is not None else self._erase_files
        self._log_counts = log_counts
        self.uploads = BlobUploads(paths.tmp_dir, rng=rng)
        self.connection_active = False

    def __repr__(self) -> str:
        return f"PLCObject(paths={self.paths!r}, plc_id={self.plc_id!r})"

    def get_plc_id(self) -> PskId:
        """The PLC's identity and pre-shared key."""
        log.info("GetPLCID")
        return PskId(self.plc_id, self.psk)

    def get_plc_status(self) -> StatusReport:
        """Current PLC status together with the log message counts."""
        status = plc_status(self._get_state(), self._get_loader_state())
        return StatusReport(status, tuple(self._log_counts()))

    def match_md5(self, md5: str) -> bool:
        """Whether ``md5`` is the checksum stored for the installed program."""
        self.connection_active = True
        try:
            stored = self.paths.md5_file.read_bytes()[:MD5_TEXT_SIZE]
        except OSError:
            log.error("no md5 file found")
            return False
        if len(stored) != MD5_TEXT_SIZE:
            log.error("error reading from md5 file")
            return False
        if stored != _md5_record(md5) or len(md5) >= MD5_TEXT_SIZE:
            log.error("md5 failed")
            return False
        log.info("md5 ok")
        return True

    def start_plc(self) -> None:
        """Ask the PLC program to start."""
        log.info("StartPLC")
        self._start()

    def stop_plc(self) -> bool:
        """Ask the PLC program to stop."""
        log.info("StopPLC")
        self._stop()
        return True

    def _erase_files(self) -> None:
        for path in (self.paths.bin_file, self.paths.md5_file):
            try:
                path.unlink()
            except FileNotFoundError:
                pass

    def repair_plc(self) -> None:
        """Erase the installed program and its checksum."""
        self._erase()

    def purge_blobs(self) -> List[Path]:
        """Delete leftover uploads and start the upload list afresh."""
        return self.uploads.purge()

    def seed_blob(self, seed: bytes) -> bytes:
        """Start a new blob from ``seed`` and return its ID."""
        return self.uploads.seed(seed)

    def append_chunk_to_blob(self, data: bytes, blob_id: bytes) -> bytes:
        """Append ``data`` to the current blob and return its new ID."""
        return self.uploads.append(data, blob_id)

    def _rename(self, source: Optional[Path], target: Path) -> bool:
        if source is None:
            return False
        try:
            os.replace(source, target)
        except OSError:
            return False
        return True

    def new_plc(
        self,
        md5sum: str,
        plc_object_blob_id: bytes,
        extra_files: Iterable[ExtraFile] = (),
    ) -> bool:
        """Install the uploaded program and extra files if the upload checks out."""
        blob_id = bytes(plc_object_blob_id)
        self.uploads.finish(blob_id)
        digest = self.uploads.complete_digest()
        if digest[: len(blob_id)] != blob_id:
            log.error("md5 mismatch, file upload error")
            return False

        log.info("md5 match, file uploaded successfully")
        self._halt()

        paths = self.paths
        tmp_file = self.uploads.filename_for(blob_id)
        if paths.md5_file.exists():
            try:
                paths.bin_file.unlink()
            except FileNotFoundError:
                pass
        if not self._rename(tmp_file, paths.bin_file):
            log.error("cant set uploaded file %s as plc start file %s", tmp_file, paths.bin_file)

        for extra in extra_files:
            source = self.uploads.filename_for(extra.blob_id)
            root = paths.http_root if is_web_file(extra.fname) else paths.plc_root
            target = root / extra.fname
            if not self._rename(source, target):
                log.error("cant rename uploaded file %s to %s", source, target)
                return False

        try:
            paths.md5_file.unlink()
        except FileNotFoundError:
            pass
        try:
            paths.md5_file.write_bytes(_md5_record(md5sum))
        except OSError as exc:
            log.error("failed to write md5 file %s: %s", paths.md5_file, exc)
            return False

        self._reload()
        log.info("file upload finished")
        return True