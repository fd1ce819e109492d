# -*- coding: utf-8

import os

from setuptools import find_packages, setup

here = os.path.abspath(os.path.dirname(__file__))
# Get __version__ variable
exec(open(os.path.join(here, 'hdfsio', 'version.py')).read())

with open(os.path.join(here, 'README.md'), encoding='utf-8') as f:
    long_description = f.read()

setup(
    name='hdfsio',
    version=__version__,
    description='Path, stream and SequenceFile helpers over HDFS, S3 '
                'and local filesystems',
    classifiers=[
        'Development Status :: 3 - Alpha',

        'Intended Audience :: Developers',

        'License :: OSI Approved :: MIT License',
        'Operating System :: POSIX',
        'Operating System :: POSIX :: Linux',

        'Programming Language :: Python :: 3.8',
        'Programming Language :: Python :: 3.9',
        'Programming Language :: Python :: 3.10',
        'Programming Language :: Python :: 3.11',
        'Programming Language :: Python :: 3.12',

        'Topic :: System :: Filesystems',
    ],
    long_description=long_description,
    long_description_content_type='text/markdown',
    packages=find_packages(exclude=['tests', 'tests.*']),
    extras_require={
        'test': ['pytest', 'flake8', 'autopep8', 'parameterized', 'isort',
                 'moto>=5'],
    },
    python_requires=">=3.8",
    install_requires=['pyarrow>=6.0.0', 'boto3', 'deprecation'],
    include_package_data=True,
    zip_safe=False,

    keywords='filesystem hdfs s3 sequencefile',
)
