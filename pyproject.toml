[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "lxe"
version = "0.1.0"
description = "Building blocks for pods on LXD: network plugins, cloud-init network config and waiting operation wrappers"
requires-python = ">=3.10"
dependencies = []
keywords = ["lxd", "containers", "cni", "networking", "cloud-init", "kubernetes"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Systems Administration",
    "Topic :: System :: Networking",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["lxe"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
