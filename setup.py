#!/usr/bin/env python3
"""
Setup script for the SO-101 leader/follower teleoperation package.
Install with: pip install -e .
"""

from setuptools import setup, find_packages

setup(
    name="so101-teleop",
    version="0.1.0",
    description="Leader/Follower Teleoperation for the SO-101 Robot Arm",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.10",
    install_requires=[
        "numpy",
        "lerobot[feetech]",
        "pyserial",
        "pynput",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "so101-teleop=so101_teleop.main:main_cli",
        ],
    },
    include_package_data=True,
    zip_safe=False,
)
