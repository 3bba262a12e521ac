"""
Setup file.
"""

import os

from setuptools import find_packages, setup

URL = "https://github.com/enginepack/enginepack"
KEYWORDS = "unreal engine plugin packaging marketplace build toolchain multi-version"
HERE = os.path.dirname(os.path.abspath(__file__))


if __name__ == "__main__":
    setup(
        name="enginepack",
        version="0.1.0",
        description="Build and package a plugin for several engine versions",
        keywords=KEYWORDS,
        url=URL,
        python_requires=">=3.10",
        package_dir={"": "src"},
        packages=find_packages(where="src"),
        install_requires=[
            "psutil",
            "requests",
            "tqdm",
        ],
        extras_require={
            "test": ["pytest"],
        },
        entry_points={
            "console_scripts": [
                "enginepack = enginepack.cli:main",
            ],
        },
        include_package_data=True)
