[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "opsmgr"
version = "0.1.0"
description = "SQLite inventory of hosts, jobs and playbooks, with playbook steps run over caller-supplied SSH sessions"
requires-python = ">=3.10"
keywords = ["ssh", "operations", "inventory", "playbook", "jobs", "sqlite"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Systems Administration",
]
dependencies = [
    "pyyaml",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["opsmgr"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
