from setuptools import setup, find_packages

setup(
    name="fedcycle",
    version="0.1.0",
    description="Device-side client for federated learning cycle negotiation and artifact retrieval",
    author="fedcycle Team",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    python_requires=">=3.9",
    install_requires=[
        "torch>=2.0.0",
        "numpy>=1.24.0",
        "pyyaml>=6.0",
        "requests>=2.28.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "pytest-asyncio>=0.21",
        ],
    },
)
