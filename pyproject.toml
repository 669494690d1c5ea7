[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "iretunnel"
version = "0.1.0"
description = "Participating-tunnel logic for an anonymous overlay network: layer encryption, tunnel message framing and build request handling"
requires-python = ">=3.10"
dependencies = [
    "cryptography",
]
keywords = ["tunnel", "overlay-network", "anonymity", "bloom-filter", "aes"]
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
    "Framework :: AsyncIO",
    "Topic :: Internet",
    "Topic :: Security :: Cryptography",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[tool.hatch.build.targets.wheel]
packages = ["iretunnel"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
