import struct

import pytest

from plcrte.modformat import (
    MODULE_SIGN,
    SYM_INFO_CODE_MASK,
    ErrorCode,
    LoadMode,
    ModuleHeader,
    SymbolLocation,
    SymbolType,
    UdynlinkError,
    parse_header,
    required_ram_size,
)
from plcrte.udynlink import DEFAULT_RAM_BASE, FLASH_BASE, load_module, module_name

CODE = bytes(range(16))
DATA = struct.pack("<II", 0x11111111, 0x22222222)

SYMBOLS = [
    ("demo", SymbolType.NAME, SymbolLocation.DATA, 0),
    ("main", SymbolType.EXPORTED, SymbolLocation.CODE, 4),
    ("counter", SymbolType.EXPORTED, SymbolLocation.DATA, 4),
    ("printf", SymbolType.EXTERN, SymbolLocation.DATA, 0),
    ("helper", SymbolType.LOCAL, SymbolLocation.CODE, 8),
]
PRINTF_ADDRESS = 0x08001234


def build_image(symbols=SYMBOLS, *, relocs=(), code=CODE, data=DATA, bss_size=0, num_lot=0,
                sign=MODULE_SIGN):
    count = len(symbols)
    string_base = 4 * (1 + 2 * count)
    strings = bytearray()
    words = []
    for name, sym_type, location, value in symbols:
        info = int(sym_type) | (SYM_INFO_CODE_MASK if location is SymbolLocation.CODE else 0)
        words += [(info << 28) | (string_base + len(strings)), value]
        strings += name.encode() + b"\0"
    table = struct.pack(f"<{1 + 2 * count}I", count, *words) + bytes(strings)
    table += b"\0" * (-len(table) % 4)
    rel_bytes = b"".join(struct.pack("<II", a, b) for a, b in relocs)
    header = ModuleHeader(sign, 0, num_lot, len(relocs), len(table), len(code), len(data), bss_size)
    return header.to_bytes() + rel_bytes + table + code + data


def word(module, offset):
    return struct.unpack_from("<I", module.ram, offset)[0]


def test_module_name_from_image():
    assert module_name(build_image()) == "demo"


def test_module_name_requires_name_symbol_first():
    symbols = [("main", SymbolType.EXPORTED, SymbolLocation.CODE, 0)]
    assert module_name(build_image(symbols)) is None


def test_invalid_sign_rejected():
    with pytest.raises(UdynlinkError) as info:
        load_module(build_image(sign=0))
    assert info.value.code is ErrorCode.ERR_LOAD_INVALID_SIGN


def test_invalid_mode_rejected():
    with pytest.raises(UdynlinkError) as info:
        load_module(build_image(), 7)
    assert info.value.code is ErrorCode.ERR_LOAD_INVALID_MODE


def test_xip_symbol_addresses():
    image = build_image()
    module = load_module(image, LoadMode.XIP)
    code_offset = parse_header(image).code_offset()
    assert module.symbol_value("main") == FLASH_BASE + code_offset + 4
    assert module.symbol_value("counter") == DEFAULT_RAM_BASE + 4
    assert module.ram[:len(DATA)] == DATA
    assert module.name == "demo"


def test_copy_code_places_code_in_ram():
    module = load_module(build_image(num_lot=1), LoadMode.COPY_CODE)
    assert module.ram[4:4 + len(CODE)] == CODE
    assert module.symbol_value("main") == DEFAULT_RAM_BASE + 4 + 4
    assert module.symbol_value("counter") == DEFAULT_RAM_BASE + 4 + len(CODE) + 4


def test_copy_all_copies_whole_image():
    image = build_image(num_lot=1)
    module = load_module(image, LoadMode.COPY_ALL)
    header = parse_header(image)
    assert len(module.ram) == required_ram_size(header, LoadMode.COPY_ALL)
    assert module.ram[4:4 + len(image)] == image
    assert module.symbol_value("main") == DEFAULT_RAM_BASE + 4 + header.code_offset() + 4
    assert module.lookup_symbol("demo").type is SymbolType.NAME


def test_bss_is_zeroed_and_sized():
    image = build_image(bss_size=8)
    module = load_module(image, LoadMode.XIP)
    assert len(module.ram) == required_ram_size(parse_header(image), LoadMode.XIP)
    assert module.ram[len(DATA):] == bytes(8)


def test_lot_relocations_local_and_extern():
    image = build_image(num_lot=2, relocs=[(0, 2), (1, 3)])
    resolve = {"printf": PRINTF_ADDRESS}.get
    module = load_module(image, LoadMode.XIP, lambda n: resolve(n, 0))
    assert word(module, 0) == module.symbol_value("counter")
    assert word(module, 4) == PRINTF_ADDRESS


def test_data_relocation_against_code_symbol():
    image = build_image(num_lot=1, relocs=[(2, 1)])
    module = load_module(image, LoadMode.XIP)
    data_offset = module.data_address - module.ram_base
    assert word(module, data_offset + 4) == module.symbol_value("main")
    assert word(module, data_offset) == 0x11111111


def test_abs32_data_relocation():
    image = build_image(relocs=[(0, 0x80000000 | 0x100)])
    module = load_module(image, LoadMode.XIP)
    assert word(module, 0) == (0x11111111 + module.data_address - 0x100) & 0xFFFFFFFF


def test_unknown_extern_symbol():
    image = build_image(num_lot=1, relocs=[(0, 3)])
    with pytest.raises(UdynlinkError) as info:
        load_module(image, LoadMode.XIP)
    assert info.value.code is ErrorCode.ERR_LOAD_UNKNOWN_SYMBOL


def test_relocation_against_name_is_bad():
    image = build_image(num_lot=1, relocs=[(0, 0)])
    with pytest.raises(UdynlinkError) as info:
        load_module(image)
    assert info.value.code is ErrorCode.ERR_LOAD_BAD_RELOCATION_TABLE


def test_relocation_index_out_of_range():
    image = build_image(num_lot=1, relocs=[(0, 99)])
    with pytest.raises(UdynlinkError) as info:
        load_module(image)
    assert info.value.code is ErrorCode.ERR_LOAD_BAD_RELOCATION_TABLE


def test_given_ram_too_small():
    image = build_image()
    with pytest.raises(UdynlinkError) as info:
        load_module(image, LoadMode.XIP, None, 0x20001000, 2)
    assert info.value.code is ErrorCode.ERR_LOAD_RAM_LEN_LOW


def test_given_ram_is_used():
    module = load_module(build_image(), LoadMode.XIP, None, 0x20001000, 1024)
    assert module.foreign_ram is True
    assert module.ram_base == 0x20001000
    assert module.symbol_value("counter") == 0x20001000 + 4


def test_symbols_listing_and_missing_value():
    module = load_module(build_image())
    assert [s.name for s in module.symbols()] == ["demo", "main", "counter", "printf", "(N/A)"]
    assert module.symbol_value("missing") == 0
    assert module.lookup_symbol("missing") is None


def test_unload_twice_fails():
    module = load_module(build_image())
    module.unload()
    assert module.loaded is False
    with pytest.raises(UdynlinkError) as info:
        module.unload()
    assert info.value.code is ErrorCode.ERR_INVALID_MODULE