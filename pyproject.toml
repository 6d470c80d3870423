[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "galene"
version = "0.9.0"
description = "Building blocks of a videoconferencing server: RTP packet caching, sequence-number remapping, RTP/NTP timekeeping, rate control and client signalling messages."
requires-python = ">=3.10"
keywords = ["rtp", "rtcp", "webrtc", "sfu", "videoconferencing", "nack", "ntp"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Communications :: Conferencing",
    "Topic :: Multimedia :: Video",
    "Topic :: Software Development :: Libraries :: Python Modules",
]
dependencies = []

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["galene"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 88
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
