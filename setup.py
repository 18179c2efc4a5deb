from setuptools import setup, find_packages

setup(
    name='contestview',
    version='0.1.0',
    packages=find_packages(include=['contestview', 'contestview.*']),
    install_requires=[
        'python-dotenv',
        'supabase',
        'typing_extensions',
        'web3>=6',
    ],
    extras_require={
        'test': [
            'pytest',
            'pytest-asyncio',
        ],
    },
    description='Client-side projection layer for contest ledgers: batched reads, pricing and ownership views, settlement claims, and call builders.',
    classifiers=[
        'Programming Language :: Python :: 3',
        'License :: OSI Approved :: MIT License',
        'Operating System :: OS Independent',
    ],
    python_requires='>=3.12',
)
