[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "pdmigrate"
version = "0.1.0"
description = "Building blocks for migrating Google Cloud persistent disks through snapshots: disk, snapshot and instance clients, CLI logging, and a gcloud/terraform test harness."
requires-python = ">=3.10"
dependencies = []
keywords = [
    "gcp",
    "google-cloud",
    "compute-engine",
    "persistent-disk",
    "hyperdisk",
    "snapshot",
    "migration",
    "terraform",
    "gcloud",
    "logging",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Systems Administration",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["pdmigrate"]

[tool.hatch.build.targets.sdist]
include = ["pdmigrate", "tests", "pyproject.toml"]

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
