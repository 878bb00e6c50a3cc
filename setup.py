import os

from setuptools import setup

here = os.path.abspath(os.path.dirname(__file__))
version = {}
with open(os.path.join(here, "treeseq", "_version.py")) as f:
    exec(f.read(), version)

setup(
    name="treeseq",
    version=version["treeseq_version"],
    description="Tables, trees and files for succinct tree sequences",
    license="MIT",
    python_requires=">=3.9",
    packages=["treeseq"],
    package_data={"treeseq": ["provenance.schema.json"]},
    include_package_data=True,
    install_requires=["numpy>=1.23.5", "jsonschema>=3.0.0", "kastore>=0.3.2"],
    extras_require={"test": ["pytest"]},
)
