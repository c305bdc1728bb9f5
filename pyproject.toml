[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "stark"
version = "0.1.0"
description = "Service registration, discovery and client-side node selection for HTTP and gRPC services"
requires-python = ">=3.10"
keywords = ["microservices", "service-discovery", "registry", "grpc", "load-balancing"]
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
    "Topic :: System :: Distributed Computing",
    "Topic :: Software Development :: Libraries :: Python Modules",
]
dependencies = [
    "requests",
    "grpcio",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["stark"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
