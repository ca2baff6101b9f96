[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "sympath"
version = "0.1.0"
description = "Directory tree inventory backed by SQLite, with content hashing, hash reuse and multi-machine consolidation."
requires-python = ">=3.10"
dependencies = [
    "psutil",
]
keywords = [
    "inventory",
    "filesystem",
    "sqlite",
    "sha256",
    "fingerprint",
    "scan",
    "consolidation",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Database",
    "Topic :: System :: Filesystems",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["sympath"]

[tool.hatch.build.targets.sdist]
include = [
    "sympath",
    "tests",
]

[tool.pytest.ini_options]
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
