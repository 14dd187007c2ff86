[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "bootdisk"
version = "0.1.0"
description = "Read GPT partitions and FAT filesystems from disk images, parse boot loader entries and load PE32+ executables"
requires-python = ">=3.10"
dependencies = []
keywords = ["gpt", "fat", "fat32", "efi", "pe", "boot", "loader", "disk-image"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Boot",
    "Topic :: System :: Filesystems",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["bootdisk"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
