[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "smartspeaker"
version = "0.1.0"
description = "Smart speaker controller: mplayer playback, keyboard, voice and app commands, and a length-prefixed JSON link to a music server"
requires-python = ">=3.10"
dependencies = []
keywords = ["smart speaker", "mplayer", "music player", "voice control", "json protocol"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Multimedia :: Sound/Audio :: Players",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
smartspeaker-qwen = "smartspeaker.qwen:main"

[tool.hatch.build.targets.wheel]
packages = ["smartspeaker"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]
