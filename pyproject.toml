[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "vulnfeed"
version = "0.1.0"
description = "Parsers that turn local copies of public vulnerability feeds into a uniform in-memory advisory store"
requires-python = ">=3.10"
keywords = ["vulnerability", "security", "advisory", "cve", "nvd", "oval", "debian"]
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
    "Topic :: Security",
]
dependencies = [
    "pyyaml",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["vulnfeed"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
