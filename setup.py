from setuptools import setup, find_packages


setup(
    name="fwpkg",
    version="0.1",
    packages=find_packages(include=["fwpkg", "fwpkg.*"]),
    description="Reader, builder and verifier for flat firmware update packages.",
    author="vercingetorx",
    install_requires=[
        "pycryptodomex>=3.23.0",
        "argon2-cffi>=23.1.0",
    ],
    entry_points={
        "console_scripts": [
            "fwpkg=fwpkg.cli:main",
        ]
    },
)
