from setuptools import find_packages, setup

setup(
    name='leap-bridge-gateway',
    version='1.0.0',
    description='Discovery and device reconciliation gateway for LEAP home-automation bridges',
    author='isantolin',
    author_email='',
    packages=find_packages(include=['leapbridge', 'leapbridge.*']),
    python_requires='>=3.11',
    install_requires=[
        'msgspec',
        'marshmallow>=3.18',
        'transitions',
        'tenacity',
        'psutil',
        'prometheus_client',
        'uvloop',
        'zeroconf',
    ],
    extras_require={
        'test': [
            'pytest',
            'pytest-asyncio',
        ],
    },
    entry_points={
        'console_scripts': [
            'leapbridge=leapbridge.daemon:main',
        ],
    },
    classifiers=[
        'Programming Language :: Python :: 3',
        'Operating System :: POSIX :: Linux',
    ],
)
