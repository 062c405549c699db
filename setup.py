from setuptools import setup, find_packages


setup(
    name="tifiles",
    version="0.2.0",
    packages=find_packages(exclude=["scripts"]),
    description="Readers and writers for TI-83 Plus/TI-84 Plus variable files and .b83/.b84 bundles.",
    author="tifiles contributors",
    license="BSD-2-Clause",
    python_requires=">=3.8",
    install_requires=[],
    entry_points={
        "console_scripts": [
            "tifiles=tifiles.cli:main",
        ]
    },
)
