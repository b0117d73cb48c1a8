from setuptools import setup


setup(
    name="copyflow-intake",
    version="0.1.0",
    description="Ingest messy e-commerce CSV exports, detect the source platform and plan an enhanced export",
    packages=["copyflow_intake"],
    include_package_data=True,
    python_requires=">=3.9",
    install_requires=[
        "pandas",
        "chardet",
        "openpyxl",
    ],
    entry_points={
        "console_scripts": [
            "copyflow-intake=copyflow_intake.cli:main",
        ]
    },
)
