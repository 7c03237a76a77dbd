[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "pandactl"
version = "0.1.0"
description = "Command types, rate limiting, TCP/UDP transport and kinematic/dynamic model access for a 7-joint robot arm"
requires-python = ">=3.10"
dependencies = [
    "numpy",
]
keywords = ["robotics", "robot arm", "rate limiting", "kinematics", "jacobian", "control"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Science/Research",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: Scientific/Engineering :: Interface Engine/Protocol Translator",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["pandactl"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
