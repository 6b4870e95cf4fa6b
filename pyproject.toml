[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "cvconvert"
version = "0.1.0"
description = "Behavioural model of a MIDI-to-CV/gate converter: note stacks, CV outputs, gates and patch storage"
requires-python = ">=3.10"
dependencies = []
keywords = ["midi", "cv", "gate", "modular", "synthesizer", "nrpn", "sysex"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: Multimedia :: Sound/Audio :: MIDI",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["cvconvert"]

[tool.pytest.ini_options]
addopts = "-ra"
