"""Loading of relocatable PLC modules into a RAM region, with relocation and symbol lookup."""

from __future__ import annotations

import logging
import struct
from dataclasses import replace
from typing import Iterator, Optional

from .modformat import (
    LOT_BASE,
    NAME_SYMBOL_INDEX,
    RELOCATION_SIZE,
    WORD_SIZE,
    ErrorCode,
    LoadMode,
    ModuleHeader,
    Symbol,
    SymbolLocation,
    SymbolResolver,
    SymbolType,
    UdynlinkError,
    parse_header,
    read_symbol,
    required_ram_size,
)

log = logging.getLogger(__name__)

FLASH_BASE = 0x08000000
"""Address at which module images executed in place are mapped."""

DEFAULT_RAM_BASE = LOT_BASE
"""Address of the RAM region given to a module when the caller supplies none."""

WORD_MASK = 0xFFFFFFFF
_DATA_RELOC_FLAG = 1 << 31
_DATA_RELOC_VALUE_MASK = 0x7FFFFFFF
_WORD = struct.Struct("<I")
_RELOCATION = struct.Struct("<II")


def module_name(image) -> Optional[str]:
    """Name of the module stored in ``image``, or None if it cannot be read."""
    try:
        header = parse_header(image)
        symbol = read_symbol(image, header, NAME_SYMBOL_INDEX)
    except UdynlinkError as exc:
        log.error("cannot read module name: %s", exc)
        return None
    return None if symbol is None else symbol.name


class Module:
    """A module placed in RAM, ready to have its symbols looked up."""

    def __init__(
        self,
        header: ModuleHeader,
        mode: LoadMode,
        tables: bytes,
        ram: bytearray,
        ram_base: int,
        image_base: int,
        foreign_ram: bool,
    ) -> None:
        self.header = header
        self.mode = mode
        self.ram = ram
        self.ram_base = ram_base
        self.image_base = image_base
        self.foreign_ram = foreign_ram
        self._tables = tables
        self._loaded = True

    def __repr__(self) -> str:
        return (
            f"Module(name={self.name!r}, mode={self.mode.name}, "
            f"ram_base=0x{self.ram_base:08X}, loaded={self._loaded})"
        )

    @property
    def loaded(self) -> bool:
        return self._loaded

    @property
    def name(self) -> Optional[str]:
        if not self._loaded:
            return None
        try:
            symbol = read_symbol(self._tables, self.header, NAME_SYMBOL_INDEX)
        except UdynlinkError:
            return None
        return None if symbol is None else symbol.name

    @property
    def lot_size(self) -> int:
        return self.header.num_lot * WORD_SIZE

    @property
    def code_address(self) -> int:
        """Address of the code section."""
        if self.mode is LoadMode.COPY_CODE:
            return self.ram_base + self.lot_size
        if self.mode is LoadMode.COPY_ALL:
            return self.ram_base + self.lot_size + self.header.code_offset()
        return self.image_base + self.header.code_offset()

    @property
    def data_address(self) -> int:
        """Address of the data section, which always lives in RAM."""
        if self.mode is LoadMode.XIP:
            return self.ram_base + self.lot_size
        if self.mode is LoadMode.COPY_CODE:
            return self.ram_base + self.lot_size + self.header.code_size
        return self.ram_base + self.lot_size + self.header.code_offset() + self.header.code_size

    @property
    def _data_offset(self) -> int:
        return self.data_address - self.ram_base

    def _offset(self, symbol: Symbol) -> Symbol:
        if symbol.type not in (SymbolType.LOCAL, SymbolType.EXPORTED):
            return symbol
        base = self.code_address if symbol.location is SymbolLocation.CODE else self.data_address
        moved = replace(symbol, value=(symbol.value + base) & WORD_MASK)
        log.debug(
            "symbol %-20s relocated relative to %s, 0x%08X -> 0x%08X",
            symbol.name,
            "code" if symbol.location is SymbolLocation.CODE else "data",
            symbol.value,
            moved.value,
        )
        return moved

    def _require_loaded(self) -> None:
        if not self._loaded:
            raise UdynlinkError(ErrorCode.ERR_INVALID_MODULE, "module is not loaded")

    def _raw_symbol(self, index: int) -> Optional[Symbol]:
        return read_symbol(self._tables, self.header, index)

    def symbols(self) -> Iterator[Symbol]:
        """Every entry of the symbol table, with values at their loaded addresses."""
        self._require_loaded()
        index = 0
        while True:
            try:
                symbol = self._raw_symbol(index)
            except UdynlinkError:
                return
            if symbol is None:
                return
            yield self._offset(symbol)
            index += 1

    def lookup_symbol(self, name: str) -> Optional[Symbol]:
        """The first symbol called ``name``, or None."""
        return next((symbol for symbol in self.symbols() if symbol.name == name), None)

    def symbol_value(self, name: str) -> int:
        """Loaded address of ``name``, or 0 when the module has no such symbol."""
        symbol = self.lookup_symbol(name)
        return 0 if symbol is None else symbol.value

    def unload(self) -> None:
        """Release the module; it cannot be used afterwards."""
        self._require_loaded()
        log.info("unloading module %r", self.name)
        self._loaded = False
        self.ram = bytearray()
        self._tables = b""

    def _read_word(self, offset: int) -> int:
        if offset < 0 or offset + WORD_SIZE > len(self.ram):
            raise UdynlinkError(ErrorCode.ERR_LOAD_BAD_RELOCATION_TABLE, "relocation outside RAM")
        return _WORD.unpack_from(self.ram, offset)[0]

    def _write_word(self, offset: int, value: int) -> None:
        if offset < 0 or offset + WORD_SIZE > len(self.ram):
            raise UdynlinkError(ErrorCode.ERR_LOAD_BAD_RELOCATION_TABLE, "relocation outside RAM")
        _WORD.pack_into(self.ram, offset, value & WORD_MASK)


def _section(image: bytes, start: int, length: int, what: str) -> bytes:
    if start + length > len(image):
        raise UdynlinkError(ErrorCode.ERR_INVALID_MODULE, f"{what} extends past end of image")
    return image[start:start + length]


def _relocate(module: Module, resolve: Optional[SymbolResolver]) -> None:
    header = module.header
    start = header.relocations_offset
    table = _section(module._tables, start, header.num_rels * RELOCATION_SIZE, "relocation table")
    data_offset = module._data_offset

    for lot_offset, symt_offset in _RELOCATION.iter_unpack(table):
        if symt_offset & _DATA_RELOC_FLAG:
            target = data_offset + (lot_offset - header.num_lot) * WORD_SIZE
            current = module._read_word(target)
            module._write_word(
                target, current + module.data_address - (symt_offset & _DATA_RELOC_VALUE_MASK)
            )
            continue

        try:
            symbol = module._raw_symbol(symt_offset)
        except UdynlinkError as exc:
            raise UdynlinkError(ErrorCode.ERR_LOAD_BAD_RELOCATION_TABLE, str(exc)) from exc
        if symbol is None:
            raise UdynlinkError(
                ErrorCode.ERR_LOAD_BAD_RELOCATION_TABLE, f"symbol index {symt_offset} out of range"
            )

        if lot_offset < header.num_lot:
            target = lot_offset * WORD_SIZE
        else:
            target = data_offset + (lot_offset - header.num_lot) * WORD_SIZE

        if symbol.type in (SymbolType.LOCAL, SymbolType.EXPORTED):
            module._write_word(target, module._offset(symbol).value)
        elif symbol.type is SymbolType.EXTERN:
            address = resolve(symbol.name) if resolve is not None else 0
            log.debug(
                "symbol %-20s relocated extern at index %02u, lot_offset=%02u value=0x%08x",
                symbol.name,
                symt_offset,
                lot_offset,
                address,
            )
            if not address or address <= 0:
                raise UdynlinkError(
                    ErrorCode.ERR_LOAD_UNKNOWN_SYMBOL,
                    f"unable to resolve extern symbol '{symbol.name}'",
                )
            module._write_word(target, address)
        else:
            raise UdynlinkError(
                ErrorCode.ERR_LOAD_BAD_RELOCATION_TABLE, "relocation against the module name"
            )


def load_module(
    image,
    mode: LoadMode = LoadMode.XIP,
    resolve: Optional[SymbolResolver] = None,
    ram_base: Optional[int] = None,
    ram_size: int = 0,
) -> Module:
    """Place the module in ``image`` in RAM and apply its relocations.

    Without ``ram_base`` a RAM region is provided at DEFAULT_RAM_BASE; with it,
    ``ram_size`` must be at least the size the module needs.  Extern symbols are
    resolved through ``resolve``, which returns 0 for unknown names.
    """
    try:
        mode = LoadMode(mode)
    except ValueError as exc:
        raise UdynlinkError(ErrorCode.ERR_LOAD_INVALID_MODE, f"unknown load mode {mode!r}") from exc

    image = bytes(image)
    header = parse_header(image)
    if not header.has_valid_sign:
        raise UdynlinkError(ErrorCode.ERR_LOAD_INVALID_SIGN)

    needed = required_ram_size(header, mode)
    if needed > 0:
        if ram_base is None:
            base, foreign = DEFAULT_RAM_BASE, False
            log.info("allocated %u bytes for module", needed)
        else:
            foreign = True
            if ram_size < needed:
                raise UdynlinkError(
                    ErrorCode.ERR_LOAD_RAM_LEN_LOW, f"need {needed} bytes, got {ram_size}"
                )
            base = ram_base
    else:
        base, foreign = 0, ram_base is not None
        log.info("module doesn't need any RAM")

    ram = bytearray(needed)
    lot_size = header.num_lot * WORD_SIZE
    code_offset = header.code_offset()

    if mode is LoadMode.COPY_ALL:
        length = code_offset + header.code_size + header.data_size
        ram[lot_size:lot_size + length] = _section(image, 0, length, "module")
        tables = bytes(ram[lot_size:lot_size + code_offset])
    elif mode is LoadMode.COPY_CODE:
        length = header.code_size + header.data_size
        ram[lot_size:lot_size + length] = _section(image, code_offset, length, "code and data")
        tables = image
    else:
        ram[lot_size:lot_size + header.data_size] = _section(
            image, code_offset + header.code_size, header.data_size, "data"
        )
        tables = image

    module = Module(
        header=header,
        mode=mode,
        tables=tables,
        ram=ram,
        ram_base=base,
        image_base=FLASH_BASE,
        foreign_ram=foreign,
    )
    try:
        _relocate(module, resolve)
    except UdynlinkError as exc:
        log.error("internal error: %s", exc)
        raise
    log.info("loaded module %r in %s mode", module.name, mode.name)
    return module