[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "paxcount"
version = "0.1.0"
description = "Payload encoders, remote command interpreter and time keeping logic for a LoRaWAN people counter"
requires-python = ">=3.10"
dependencies = []
keywords = ["lorawan", "paxcounter", "cayenne-lpp", "payload", "remote-command", "timesync", "spi"]
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
    "Topic :: Communications",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["paxcount"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
