from setuptools import setup, find_namespace_packages

setup(
    name='atmfjstc-qt-binary-json',
    version='1.0.0',

    author_email='atmfjstc@protonmail.com',

    package_dir={'': 'src'},
    packages=find_namespace_packages(where='src', include=['atmfjstc.*']),

    install_requires=[
        'atmfjstc-binary-utils>=1.2.0, <2',
        'atmfjstc-error-utils>=1.3, <2',
    ],

    extras_require={
        'test': [
            'pytest',
        ],
    },

    zip_safe=True,

    description="Dependency-free reader for the Qt binary JSON (qbjs) document format",

    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Typing :: Typed",
    ],
    python_requires='>=3.7',
)
