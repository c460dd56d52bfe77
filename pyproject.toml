[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "hftkit"
version = "0.1.0"
description = "Latency metrics, market data streaming and knowledge-service integration for trading systems"
requires-python = ">=3.10"
dependencies = [
    "httpx",
]
keywords = [
    "trading",
    "latency",
    "histogram",
    "market-data",
    "order-book",
    "vwap",
    "rag",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Financial and Insurance Industry",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Framework :: AsyncIO",
    "Topic :: Office/Business :: Financial :: Investment",
    "Topic :: System :: Benchmark",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
    "respx",
]

[tool.hatch.build.targets.wheel]
packages = ["hftkit"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
