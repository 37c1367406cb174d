[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "lidarsdk"
version = "0.1.0"
description = "Host-side configuration checks, device log collection and firmware upgrade logic for networked lidar sensors"
requires-python = ">=3.10"
dependencies = []
keywords = ["lidar", "sensor", "firmware", "upgrade", "logging", "configuration"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Science/Research",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: Interface Engine/Protocol Translator",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["lidarsdk"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
