[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "prservice"
version = "0.1.0"
description = "Pull request reviewer assignment service: teams, users and automatic reviewer selection over a JSON HTTP API"
requires-python = ">=3.10"
keywords = ["pull-request", "code-review", "reviewers", "teams", "flask", "sqlite", "http-api"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Framework :: Flask",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: WWW/HTTP :: WSGI :: Application",
    "Topic :: Software Development :: Version Control",
]
dependencies = [
    "flask>=2.2",
]

[project.optional-dependencies]
test = [
    "pytest>=7.0",
]

[tool.hatch.build.targets.wheel]
packages = ["prservice"]

[tool.hatch.build.targets.sdist]
include = ["prservice", "tests", "README.md", "pyproject.toml"]

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
