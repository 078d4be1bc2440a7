from setuptools import setup, find_packages

setup(
    name='arkhive',
    version='1.0.0',
    packages=find_packages(exclude=['tests', 'tests.*']),
    include_package_data=True,
    python_requires='>=3.7',
    install_requires=[
        'Click',
        'colorama',
        'python-dotenv',
    ],
    extras_require={
        'test': ['pytest'],
    },
    entry_points='''
        [console_scripts]
        arkhive=arkhive.commands:cli
    ''',
)
