from setuptools import setup, find_packages
from pathlib import Path

this_directory = Path(__file__).parent
long_description = (this_directory / "README.md").read_text()

install_requires = [
    "pydantic >= 2, < 3",
    "typing_extensions >= 4.0, < 5",
    "tomli >= 2.0.0, < 3",
    "networkx >= 2.5",
    "click >= 8, < 9",
    "rich-click >= 1.6.0, < 2",
    "rich >= 10.16",
]

extras_require = dict(
    tests=[
        "pytest >= 7",
        "pytest-asyncio >= 0.21",
    ],
    dev=[
        "black",
        "isort >= 5.10.0, < 6",
    ],
)

setup(
    name="carbonls",
    description="carbonls is a language server for the Carbon language with incremental document sync, diagnostics and completion.",
    long_description=long_description,
    long_description_content_type="text/markdown",
    version="0.1.0",
    packages=find_packages(exclude=("tests",)),
    keywords=[
        "carbon",
        "lsp",
        "language server",
        "completion",
        "diagnostics",
    ],
    python_requires=">=3.8",
    install_requires=install_requires,
    extras_require=extras_require,
    license="ISC",
    entry_points=dict(
        console_scripts=[
            "carbonls=carbonls.cli.__main__:main",
        ]
    ),
)
