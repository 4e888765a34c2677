"""Binary layout of relocatable PLC modules: header, symbol table and error codes."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from enum import IntEnum
from typing import Callable, Optional

MODULE_SIGN = (ord("M") << 24) | (ord("L") << 16) | (ord("D") << 8) | ord("U")
LOT_BASE = 0x20000000

_HEADER = struct.Struct("<IIHHIIII")
_WORD = struct.Struct("<I")

HEADER_SIZE = _HEADER.size
WORD_SIZE = _WORD.size
RELOCATION_SIZE = 2 * WORD_SIZE

SYM_OFFSET_MASK = 0x0FFFFFFF
SYM_INFO_SHIFT = 28
SYM_INFO_CODE_MASK = 0x04
SYM_INFO_TYPE_MASK = 0x03
NAME_SYMBOL_INDEX = 0
LOCAL_SYMBOL_NAME = "(N/A)"

SymbolResolver = Callable[[str], int]
"""Maps the name of an extern symbol to its address, or 0 when it is unknown."""


class LoadMode(IntEnum):
    """How a module image is placed in RAM."""

    COPY_ALL = 0
    COPY_CODE = 1
    XIP = 2


class ErrorCode(IntEnum):
    """Result codes of loading and unloading modules."""

    OK = 0
    ERR_LOAD_INVALID_SIGN = 1
    ERR_LOAD_RAM_LEN_LOW = 2
    ERR_LOAD_OUT_OF_MEMORY = 3
    ERR_LOAD_UNABLE_TO_XIP = 4
    ERR_LOAD_NO_MORE_HANDLES = 5
    ERR_LOAD_INVALID_MODE = 6
    ERR_LOAD_BAD_RELOCATION_TABLE = 7
    ERR_LOAD_UNKNOWN_SYMBOL = 8
    ERR_LOAD_DUPLICATE_NAME = 9
    ERR_INVALID_MODULE = 10


class SymbolType(IntEnum):
    LOCAL = 0
    EXPORTED = 1
    EXTERN = 2
    NAME = 3


class SymbolLocation(IntEnum):
    CODE = 0
    DATA = 1


def error_message(code: ErrorCode) -> str:
    """Return the symbolic name of an error code."""
    return f"UDYNLINK_{ErrorCode(code).name}"


class UdynlinkError(Exception):
    """A module could not be parsed, loaded or unloaded."""

    def __init__(self, code: ErrorCode, detail: Optional[str] = None) -> None:
        self.code = ErrorCode(code)
        self.detail = detail
        message = error_message(self.code)
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


@dataclass(frozen=True)
class ModuleHeader:
    """Fixed header at the start of every module image."""

    sign: int
    crc: int
    num_lot: int
    num_rels: int
    symt_size: int
    code_size: int
    data_size: int
    bss_size: int

    @property
    def has_valid_sign(self) -> bool:
        return self.sign == MODULE_SIGN

    @property
    def relocations_offset(self) -> int:
        return HEADER_SIZE

    @property
    def symbol_table_offset(self) -> int:
        return HEADER_SIZE + self.num_rels * RELOCATION_SIZE

    def code_offset(self) -> int:
        """Offset of the code: after the header, the relocations and the symbol table."""
        return self.symbol_table_offset + self.symt_size

    def to_bytes(self) -> bytes:
        return _HEADER.pack(
            self.sign,
            self.crc,
            self.num_lot,
            self.num_rels,
            self.symt_size,
            self.code_size,
            self.data_size,
            self.bss_size,
        )


@dataclass(frozen=True)
class Symbol:
    """A named value living in the code or the data section of a module."""

    name: str
    value: int
    type: SymbolType
    location: SymbolLocation


def parse_header(data) -> ModuleHeader:
    """Parse the module header at the start of ``data``."""
    if len(data) < HEADER_SIZE:
        raise UdynlinkError(ErrorCode.ERR_INVALID_MODULE, "image shorter than header")
    return ModuleHeader(*_HEADER.unpack_from(data, 0))


def required_ram_size(header: ModuleHeader, mode: LoadMode) -> int:
    """Bytes of RAM a module needs when loaded in ``mode``."""
    mode = LoadMode(mode)
    total = header.num_lot * WORD_SIZE + header.data_size + header.bss_size
    if mode is LoadMode.COPY_CODE:
        total += header.code_size
    elif mode is LoadMode.COPY_ALL:
        total += header.code_offset() + header.code_size
    return total


def _read_word(image, offset: int) -> int:
    try:
        return _WORD.unpack_from(image, offset)[0]
    except struct.error as exc:
        raise UdynlinkError(ErrorCode.ERR_INVALID_MODULE, "symbol table outside image") from exc


def _read_name(image, start: int) -> str:
    raw = image if isinstance(image, (bytes, bytearray)) else bytes(image)
    if start >= len(raw):
        raise UdynlinkError(ErrorCode.ERR_INVALID_MODULE, "symbol name outside image")
    end = raw.find(b"\0", start)
    if end < 0:
        raise UdynlinkError(ErrorCode.ERR_INVALID_MODULE, "unterminated symbol name")
    return bytes(raw[start:end]).decode("utf-8", errors="replace")


def read_symbol(image, header: ModuleHeader, index: int) -> Optional[Symbol]:
    """Return the symbol at ``index`` of the symbol table, or None past its end."""
    base = header.symbol_table_offset
    count = _read_word(image, base)
    if index < 0 or index >= count:
        return None
    name_off = _read_word(image, base + (index * 2 + 1) * WORD_SIZE)
    value = _read_word(image, base + (index * 2 + 2) * WORD_SIZE)
    info = name_off >> SYM_INFO_SHIFT
    sym_type = SymbolType(info & SYM_INFO_TYPE_MASK)
    location = SymbolLocation.CODE if info & SYM_INFO_CODE_MASK else SymbolLocation.DATA
    if index == NAME_SYMBOL_INDEX and sym_type is not SymbolType.NAME:
        raise UdynlinkError(
            ErrorCode.ERR_INVALID_MODULE, "module name symbol doesn't have the correct type"
        )
    if sym_type is SymbolType.LOCAL:
        name = LOCAL_SYMBOL_NAME
    else:
        name = _read_name(image, base + (name_off & SYM_OFFSET_MASK))
    return Symbol(name=name, value=value, type=sym_type, location=location)