[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "perl-connector"
version = "0.1.0"
description = "Monitoring connector that runs Perl check plugins on behalf of a monitoring engine"
requires-python = ">=3.10"
dependencies = []
keywords = ["monitoring", "connector", "perl", "plugins", "checks"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Monitoring",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
perl-connector = "perl_connector.main:main"

[tool.hatch.build.targets.wheel]
packages = ["perl_connector"]

[tool.pytest.ini_options]
addopts = "-ra"
