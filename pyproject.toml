[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "xv6kit"
version = "0.1.0"
description = "Pure-Python models of a small x86 teaching kernel: paging, descriptors, ELF headers, locks, system calls, traps, a shell parser, a heap allocator and wc."
requires-python = ">=3.10"
dependencies = []
keywords = ["operating-system", "kernel", "x86", "paging", "shell", "elf", "education"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Education",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Operating System",
    "Topic :: Education",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
xv6-wc = "xv6kit.wc:main"

[tool.hatch.build.targets.wheel]
packages = ["xv6kit"]

[tool.pytest.ini_options]
addopts = "-ra"
