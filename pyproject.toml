[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "complement"
version = "0.1.0"
description = "Blueprints, configuration and an anonymising account snapshot tool for testing Matrix homeservers"
requires-python = ">=3.10"
keywords = ["matrix", "homeserver", "testing", "blueprint", "anonymise", "sync", "snapshot"]
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
    "Topic :: Software Development :: Testing",
    "Topic :: Communications :: Chat",
]
dependencies = [
    "requests",
]

[project.optional-dependencies]
test = [
    "pytest",
    "responses",
]

[project.scripts]
account-snapshot = "complement.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["complement"]

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
