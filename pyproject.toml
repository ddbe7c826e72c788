[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "vcpukit"
version = "0.1.0"
description = "An architecture-independent virtual CPU abstraction for hypervisors"
requires-python = ">=3.10"
dependencies = []
keywords = ["hypervisor", "vcpu", "virtualization", "emulator", "virtual-machine"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Emulators",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["vcpukit"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
