#!/usr/bin/env python

# Usage:
#  $ pip install .
#  $ pip install -e ".[test]"

from setuptools import setup, find_packages


# util function to get version information from file with __version__=
def get_version(filename):
    try:
        with open(filename, "r") as f:
            for line in f:
                if line.startswith("__version__"):
                    # extract the version string and strip it
                    version = line.split('"')[1].strip().strip('"').strip("'")
                    return version
    except FileNotFoundError:
        print(f"Cannot get version information from {filename}")
    except:
        raise


setup(
    name="pdedomain",
    version=get_version("./src/pdedomain/_version.py"),
    description="Configuration and verification layer for mesh-based PDE solvers",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.9",
    install_requires=[
        "numpy",
        "scipy",
        "sympy",
        "pydantic>=2",
        "pyyaml",
        "ipython",
    ],
    extras_require={
        "test": ["pytest"],
    },
)
