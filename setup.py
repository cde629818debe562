from setuptools import setup, find_packages
setup(
    name="deed_explorer",
    version="0.1.0",
    package_dir={"": "src"},
    packages=find_packages("src"),
    include_package_data=True,
    python_requires=">=3.9",
    install_requires=[
        "httpx",
        "shapely>=2.0",
        "fastapi",
        "pydantic",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        'console_scripts': [
            'deed_explorer=deed_explorer.__main__:main'
        ]
    }
)
