"""
Setup script for the ResNet builder
===================================

Installs the ResNet topology builder modules and the resnet-summary script.
"""

from setuptools import setup
import os

HERE = os.path.abspath(os.path.dirname(__file__))


# Read README file
def read_readme():
    with open(os.path.join(HERE, "README.md"), "r", encoding="utf-8") as fh:
        return fh.read()


# Read requirements
def read_requirements():
    with open(os.path.join(HERE, "requirements.txt"), "r", encoding="utf-8") as fh:
        return [line.strip() for line in fh if line.strip() and not line.startswith("#")]


setup(
    name="resnet-builder",
    version="1.0.0",
    author="AI Projects",
    author_email="ai.projects@example.com",
    description="ResNet 18/34/50/101/152 topology builder for PyTorch",
    long_description=read_readme(),
    long_description_content_type="text/markdown",
    url="https://github.com/ai-projects/resnet-builder",
    py_modules=[
        "builder",
        "config",
        "demo",
        "errors",
        "layers",
        "logger",
        "resnet",
        "weights",
    ],
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Intended Audience :: Science/Research",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Topic :: Scientific/Engineering :: Artificial Intelligence",
        "Topic :: Software Development :: Libraries :: Python Modules",
    ],
    python_requires=">=3.8",
    install_requires=read_requirements(),
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov>=3.0.0",
            "black>=22.0.0",
            "flake8>=4.0.0",
            "mypy>=0.950",
        ],
        "tracking": [
            "tensorboard>=2.8.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "resnet-summary=demo:main",
        ],
    },
    keywords="resnet, deep learning, pytorch, computer vision, architecture",
    project_urls={
        "Bug Reports": "https://github.com/ai-projects/resnet-builder/issues",
        "Source": "https://github.com/ai-projects/resnet-builder",
    },
)
