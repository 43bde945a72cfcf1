[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "packagetester"
version = "0.1.0"
description = "Helpers for testing integration packages: pipeline, static and system test support, coverage and report output, semantic versions and package storage signatures."
requires-python = ">=3.10"
keywords = ["testing", "integration-packages", "ingest-pipeline", "xunit", "cobertura", "semver", "xxhash"]
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
    "Topic :: Software Development :: Testing",
]
dependencies = [
    "pyyaml",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["packagetester"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
