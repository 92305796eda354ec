[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "robot_self_filter"
version = "0.1.0"
description = "Remove a robot's own body from point clouds using its URDF collision geometry"
requires-python = ">=3.10"
keywords = [
    "robotics",
    "point cloud",
    "lidar",
    "self filter",
    "urdf",
    "collision geometry",
    "ray casting",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Science/Research",
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
    "numpy",
    "scipy",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["robot_self_filter"]

[tool.hatch.build.targets.sdist]
include = [
    "robot_self_filter",
    "tests",
]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
ignore_missing_imports = true
