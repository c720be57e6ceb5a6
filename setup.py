import setuptools

with open("README.md", "r") as fh:
    long_description = fh.read()

setuptools.setup(
    name="startrace",
    version="0.1.0",
    author="EPFL",
    description="Proximity tracing core: day key chain, EphIDs and retroactive matching",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=setuptools.find_packages(include=["startrace", "startrace.*"]),
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: Apache Software License",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.7",
    install_requires=["pycryptodomex", "structlog>=21.2"],
    extras_require={"dev": ["black", "flake8", "pre-commit"], "test": ["pytest"]},
)
