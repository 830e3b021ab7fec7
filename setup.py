from setuptools import setup, find_packages

setup(
    name="ccm-remediator",
    version="0.1.0",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    install_requires=[
        "cryptography>=41.0.0",
        "pydantic>=2.5.0",
        "pydantic-settings>=2.1.0",
    ],
    extras_require={
        "winrm": [
            "pywinrm>=0.4.3",
        ],
        "dev": [
            "pytest>=7.4.0",
            "pytest-cov>=4.1.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "ccm-remediator=ccm_remediator.cli:main",
        ],
    },
    python_requires=">=3.11",
)
