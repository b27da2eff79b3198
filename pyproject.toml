[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "portrocket"
version = "0.1.0"
description = "Port scanning, service and version detection, host discovery and scan reports"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "port scanner",
    "network",
    "tcp",
    "udp",
    "syn scan",
    "service detection",
    "host discovery",
    "banner grabbing",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Information Technology",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Networking :: Monitoring",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["portrocket"]

[tool.hatch.build.targets.sdist]
include = ["portrocket", "tests"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
