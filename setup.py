from pathlib import Path

from setuptools import setup, find_namespace_packages


def _read_requirements(filename: str) -> list[str]:
    requirements_path = Path(filename)
    if not requirements_path.exists():
        return []
    return [
        line.strip()
        for line in requirements_path.read_text().splitlines()
        if line.strip() and not line.startswith('#')
    ]


install_requires = _read_requirements("requirements.txt")

setup(
    name="vaxchain",
    version="1.0.0",
    description="Tamper-evident hash-chain ledger for cold-chain sensor readings.",

    # Define the single source root
    package_dir={"": "src"},

    # Find all packages under the single 'src' directory
    packages=find_namespace_packages(where="src"),

    python_requires=">=3.9",
    install_requires=install_requires,
    extras_require={
        "postgres": ["asyncpg>=0.29"],
        "test": [
            "pytest>=7.4",
            "pytest-asyncio>=0.23",
            "httpx>=0.25",
            "asgi-lifespan>=2.1",
        ],
    },

    include_package_data=False,

    classifiers=[
        "Programming Language :: Python :: 3",
        "Framework :: FastAPI",
    ],
    entry_points={
        "console_scripts": [
            "vaxchain=vaxchain.cli:main",
        ]
    },
)
