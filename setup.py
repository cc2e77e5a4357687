from setuptools import setup, find_packages


setup(
    name="archivelib",
    version="1.4.0",
    packages=find_packages(include=["archivelib", "archivelib.*"]),
    description="Archiving library: create, extract and stream tar, zip, jar, ar, cpio and 7z archives, with gzip, bzip2, xz, lzma and zstd compression.",
    author="pulsebeat02",
    python_requires=">=3.8",
    install_requires=[
        "zstandard>=0.18.0",
        "py7zr>=0.20.0",
        "pycryptodomex>=3.23.0",
    ],
    entry_points={
        "console_scripts": [
            "archivelib=archivelib.cli:main",
        ]
    },
)
