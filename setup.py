from setuptools import setup, find_packages

setup(
    name='existinfra',
    version='0.1.0',
    packages=find_packages(exclude=['existinfra.tests', 'existinfra.tests.*']),
    include_package_data=True,
    install_requires=[
        'typer',
        'fastapi',
        'uvicorn',
        'kubernetes',
        'paramiko',
        'pydantic>=2',
        'PyYAML',
        'python-dotenv',
    ],
    extras_require={
        'test': [
            'pytest',
            'jsonschema',
            'httpx',
        ],
    },
    entry_points={
        'console_scripts': [
            'existinfra=existinfra.cli:run'
        ]
    },
    author='Your Name',
    description='Declarative, undoable resource plans for provisioning and upgrading Kubernetes nodes on existing infrastructure',
    classifiers=[
        'Programming Language :: Python :: 3',
        'Operating System :: OS Independent',
    ],
    python_requires='>=3.8',
)
