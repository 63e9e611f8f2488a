[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "pedalservo"
version = "0.1.0"
description = "Pedal-driven control of an MKS servo over RS485: debounced buttons, mode state machine and serial protocol client"
requires-python = ">=3.10"
keywords = ["mks", "servo", "rs485", "serial", "state-machine", "debounce", "pedal"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: Interface Engine/Protocol Translator",
]
dependencies = [
    "pyserial",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
pedalservo = "pedalservo.app:main"

[tool.hatch.build.targets.wheel]
packages = ["pedalservo"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
