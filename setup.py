import setuptools

with open("discordfs/.version") as f:
    version = f.read().strip()

setuptools.setup(
    name="discordfs",
    version=version,
    python_requires=">=3.11.0",
    license="Apache-2.0",
    entry_points={"console_scripts": ["discordfs = discordfs_cli.__main__:main"]},
    packages=["discordfs", "discordfs_vfs", "discordfs_cli"],
    package_data={"discordfs": [".version", "py.typed"], "discordfs_vfs": ["py.typed"]},
    install_requires=[
        "appdirs",
        "click",
        "llfuse",
    ],
    extras_require={"test": ["pytest"]},
)
