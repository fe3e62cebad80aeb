from setuptools import setup, find_packages


setup(
    name="kvnoid",
    version="0.1",
    packages=find_packages(include=["kvnoid", "kvnoid.*"]),
    description="Passphrase-encrypted single-file key/value containers (.kvn).",
    install_requires=[
        "pycryptodomex>=3.23.0",
    ],
    entry_points={
        "console_scripts": [
            "kvn=kvnoid.cli:main",
        ]
    },
)
