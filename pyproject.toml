[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "smtpdextras"
version = "5.7.2"
description = "Queue and scheduler backends for an SMTP daemon: in-memory, null, stub and callback-driven implementations"
requires-python = ">=3.10"
keywords = ["smtp", "mail", "queue", "scheduler", "mta"]
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
    "Topic :: Communications :: Email :: Mail Transport Agents",
]
dependencies = [
    "sortedcontainers",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["smtpdextras"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 88
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
