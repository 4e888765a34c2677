[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "plcrte"
version = "0.1.0"
description = "Host-independent parts of a small PLC runtime: module image linking, chunked program uploads, settings and status texts"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "plc",
    "runtime",
    "iec-61131",
    "dynamic-linker",
    "embedded",
    "firmware-upload",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Manufacturing",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Embedded Systems",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["plcrte"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
