"""
Setup script for lbm2d package.
"""

from setuptools import setup, find_packages

setup(
    name="lbm2d",
    version="0.1.0",
    description="D2Q9 Lattice Boltzmann solver for 2-D incompressible flow",
    author="Andrey",
    packages=find_packages(include=["lbm2d", "lbm2d.*"]),
    python_requires=">=3.9",
    install_requires=[
        "numpy>=1.20",
        "numba>=0.56",
        "scipy>=1.7",
        "tqdm>=4.60",
    ],
    extras_require={
        "dev": ["pytest>=7.0", "black", "flake8"],
    },
)
