[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "ledgerhub"
version = "0.1.0"
description = "Double-entry ledger rules, request handlers and signed webhook delivery"
requires-python = ">=3.10"
keywords = ["ledger", "accounting", "double-entry", "webhooks", "bookkeeping"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Financial and Insurance Industry",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Office/Business :: Financial :: Accounting",
]
dependencies = [
    "httpx",
]

[project.optional-dependencies]
test = [
    "pytest",
    "respx",
]

[tool.hatch.build.targets.wheel]
packages = ["ledgerhub"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
