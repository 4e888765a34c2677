# plcrte

`plcrte` holds host-independent parts of a small PLC runtime: the service an
IDE calls to identify the PLC, query its status and upload a new program; a
micro dynamic linker for compiled PLC module images; persistent runtime
settings; and the status texts shown on a front panel or web page.

It has no dependencies outside the standard library and supports Python 3.10
and later.

## Installation

```
pip install .
```

To run the test suite:

```
pip install ".[test]"
pytest
```

## Modules

| Module | Purpose |
| --- | --- |
| `plcrte.modformat` | The module image format: `ModuleHeader` (with `code_offset`), `parse_header`, `Symbol`, `read_symbol`, `LoadMode`, `SymbolType`, `SymbolLocation`, `required_ram_size`, plus `ErrorCode`, `UdynlinkError` and `error_message`. |
| `plcrte.udynlink` | `load_module` places an image in a RAM region, applies its relocations, resolves extern symbols through a callback and returns a `Module`. A `Module` offers `symbols`, `lookup_symbol`, `symbol_value` and `unload`. `module_name` reads a module's name straight from an image. |
| `plcrte.settings` | `PlcSettings`, every runtime setting with its default, and `SettingsStore`, which keeps them in a JSON file (`load`, `save`, `apply`, `update`, `export`). |
| `plcrte.status` | `PlcStatus`, `AddressType` and the texts built from them: `plc_status`, `ip_assignment_method`, `describe_ip_address`, `autostart_source`, `module_name_text`, `cycle_time_text`. |
| `plcrte.stackmonitor` | Thread stack usage checks: `stack_usage_percent`, `classify_usage`, `check_thread_stacks`, giving a `StackReport` with a `StackLevel` for each thread (warning from 70 %, critical from 95 %). |
| `plcrte.blobs` | Chunked uploads into temporary files, each identified by the MD5 of everything sent so far: `BlobUploads` (`purge`, `seed`, `append`, `finish`, `filename_for`, `complete_digest`), `Upload`, `UploadError`, `generate_random_filename` and `delete_tmp_files`. |
| `plcrte.plcobject` | `PLCObject`, the service an IDE calls: `get_plc_id`, `get_plc_status`, `match_md5`, `start_plc`, `stop_plc`, `repair_plc`, `purge_blobs`, `seed_blob`, `append_chunk_to_blob` and `new_plc`; with `PlcPaths`, `PskId`, `StatusReport`, `ExtraFile` and `is_web_file`. |

## Examples

Uploading and installing a program:

```python
import hashlib
from plcrte.plcobject import PLCObject, PlcPaths

paths = PlcPaths.under("/var/lib/plc")   # plc/, tmp/, www/, plc/plc.bin, plc/plc.md5
paths.create()
plc = PLCObject(paths, plc_id="plc-demo")

program = b"...compiled PLC module..."
plc.purge_blobs()
blob_id = plc.seed_blob(b"")
blob_id = plc.append_chunk_to_blob(program, blob_id)

md5sum = hashlib.md5(program).hexdigest()
plc.new_plc(md5sum, blob_id)   # True: program moved to plc/plc.bin, MD5 stored
plc.match_md5(md5sum)          # True
```

`new_plc` compares the blob ID with the digest of the seed and every chunk.
Extra files, given as `ExtraFile(fname, blob_id)`, are moved beside the
program, or under the web root when `is_web_file` holds for their name
(`.htm`, `.html`, `.js`, `.json`, `.css`). Starting, stopping, halting,
reloading and the PLC state are supplied to `PLCObject` as callables
(`start`, `stop`, `halt`, `reload`, `get_state`, `get_loader_state`,
`log_counts`); by default they do nothing and report a stopped, empty PLC.

Rejecting an image that is not a module:

```python
from plcrte.modformat import ErrorCode, UdynlinkError
from plcrte.udynlink import load_module

try:
    load_module(bytes(32))
except UdynlinkError as exc:
    assert exc.code is ErrorCode.ERR_LOAD_INVALID_SIGN
```

Keeping settings:

```python
from plcrte.settings import SettingsStore

store = SettingsStore("settings.json")
store.load()                        # a missing file leaves the defaults
store.update(hostname="plc-demo")   # sets and saves
store.export()["network/hostname"]  # "plc-demo"
```

Status texts:

```python
from plcrte.status import PlcStatus, cycle_time_text, plc_status
from plcrte.stackmonitor import StackLevel, classify_usage, stack_usage_percent

plc_status(1, 1) is PlcStatus.STARTED     # True
plc_status(1, 0) is PlcStatus.EMPTY       # no program loaded
cycle_time_text(10_000_000, 42)           # "10ms tick=42"
classify_usage(stack_usage_percent(1000, 250)) is StackLevel.WARNING  # 75 %
```

## What this package does not do

- It has no network server or wire protocol: `PLCObject` is a plain Python
  object whose methods a server of your own must call.
- It does not run PLC code. `load_module` links an image into a byte buffer
  and reports symbol addresses; nothing is executed, and there is no cycle
  loop or tick counter.
- It keeps no runtime message log: the log counts in `StatusReport` come from
  whatever `log_counts` callable is supplied.
- It does not read or set a real-time clock or the system time.