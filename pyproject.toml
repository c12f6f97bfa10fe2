[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "roku"
version = "0.1.0"
description = "A user-space CLAT (464XLAT customer-side translator) running on a Linux TUN interface"
requires-python = ">=3.10"
dependencies = []
keywords = ["clat", "464xlat", "nat64", "ipv6", "ipv4", "tun", "siit"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: No Input/Output (Daemon)",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Networking",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
roku = "roku.main:main"

[tool.hatch.build.targets.wheel]
packages = ["roku"]

[tool.pytest.ini_options]
addopts = "-ra"
