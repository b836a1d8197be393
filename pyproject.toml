[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "rengarde"
version = "0.1.0"
description = "Redundant UDP relay for WireGuard: send every packet over all usable network interfaces to one server."
requires-python = ">=3.11"
keywords = ["wireguard", "udp", "relay", "redundancy", "multipath", "bonding", "networking"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Framework :: AsyncIO",
    "Topic :: System :: Networking",
]
dependencies = [
    "pyyaml>=6.0",
    "psutil>=5.9",
]

[project.optional-dependencies]
test = [
    "pytest>=7.4",
    "pytest-asyncio>=0.23",
]

[project.scripts]
rengarde-server = "rengarde.server:main"
rengarde-client = "rengarde.client:main"

[tool.hatch.build.targets.wheel]
packages = ["rengarde"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py311"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.11"
warn_unused_ignores = true
warn_redundant_casts = true
