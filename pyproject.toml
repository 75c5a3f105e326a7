[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "lightswitch"
version = "0.1.0"
description = "Profile aggregation, kernel symbolization and pprof encoding for a sampling CPU profiler"
requires-python = ">=3.10"
dependencies = []
keywords = ["profiling", "pprof", "flamegraph", "symbolization", "elf", "kallsyms"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Monitoring",
    "Topic :: Software Development :: Debuggers",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["lightswitch"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
