"""
Setup script for the Biharmonic Constrained Mesh Deformer
"""

from setuptools import setup, find_namespace_packages

with open("docs/README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="biharmonic-mesh-deformer",
    version="1.0.0",
    author="Shubham Vikas Mhaske",
    author_email="shubham.mhaske@tamu.edu",
    description="Constrained biharmonic deformation of triangle meshes with selectable Laplacian weights",
    long_description=long_description,
    long_description_content_type="text/markdown",
    url="https://github.com/shubham-mhaske/geometric_modelling_project",
    packages=find_namespace_packages(include=["src", "src.*", "scripts"]),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Science/Research",
        "Topic :: Scientific/Engineering :: Mathematics",
        "Topic :: Scientific/Engineering :: Visualization",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.9",
    install_requires=[
        "numpy>=1.24.0",
        "scipy>=1.12.0",
        "pyvista>=0.46.4",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0",
            "pytest-cov>=4.0",
            "black>=23.0",
            "flake8>=6.0",
            "mypy>=1.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "mesh-deform=scripts.deform_mesh:main",
            "mesh-experiments=scripts.experiment_runner:main",
            "mesh-synthetic=scripts.generate_synthetic_data:main",
            "mesh-test=tests.test_pipeline:main",
        ],
    },
)
