[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "minitorrent"
version = "0.1.0"
description = "A small tracker-and-peer file sharing system over plain TCP"
requires-python = ">=3.10"
dependencies = []
keywords = ["file-sharing", "tracker", "peer-to-peer", "tcp"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: End Users/Desktop",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Communications :: File Sharing",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
minitorrent-tracker = "minitorrent.tracker:main"
minitorrent-peer = "minitorrent.peer:main"

[tool.hatch.build.targets.wheel]
packages = ["minitorrent"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
