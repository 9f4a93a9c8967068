[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "minikernel"
version = "0.1.0"
description = "Building blocks for a plugin-oriented, local-first data platform: layered configuration, plugin manifests and discovery, dependency ordering, an asyncio message bus and SQLite storage."
requires-python = ">=3.11"
dependencies = [
    "platformdirs",
    "tomli-w",
]
keywords = [
    "plugin-system",
    "message-bus",
    "local-first",
    "sqlite",
    "configuration",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Framework :: AsyncIO",
    "Topic :: Software Development :: Libraries :: Application Frameworks",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[tool.hatch.build.targets.wheel]
packages = ["minikernel"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[tool.ruff]
line-length = 100
target-version = "py311"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.11"
warn_unused_ignores = true
warn_redundant_casts = true
