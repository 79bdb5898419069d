[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "hosetool"
version = "0.1.0"
description = "Game server cluster tooling: config parsing, settings storage, cargo build control, process killing and TCP/WebSocket test clients"
requires-python = ">=3.10"
keywords = ["server", "config", "cargo", "build", "tcp", "websocket", "protobuf"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Framework :: AsyncIO",
    "Topic :: System :: Systems Administration",
]
dependencies = [
    "websockets",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[tool.hatch.build.targets.wheel]
packages = ["hosetool"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
