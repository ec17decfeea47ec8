[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "chfsclient"
version = "0.1.0"
description = "Client library for a consistent-hashing distributed ad hoc file system"
requires-python = ">=3.10"
dependencies = []
keywords = ["filesystem", "distributed", "consistent-hashing", "hpc", "murmur3"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Science/Research",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Filesystems",
    "Topic :: System :: Distributed Computing",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["chfsclient"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
