[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "memvid"
version = "1.2.0"
description = "Store text chunks as QR code images with SQLite-backed chunk metadata and lookup"
requires-python = ">=3.10"
dependencies = [
    "numpy",
    "pillow",
]
keywords = ["qr", "qr-code", "text", "chunking", "tokenization", "storage", "sqlite"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Text Processing :: Indexing",
    "Topic :: Database",
    "Topic :: Multimedia :: Graphics",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["memvid"]

[tool.hatch.build.targets.sdist]
include = [
    "memvid",
    "tests",
    "pyproject.toml",
]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
