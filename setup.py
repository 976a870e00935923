import os
from setuptools import setup
from re import match, S

with open(os.path.join('mw_bulk_client', '__init__.py'), 'r') as f:
    contents = f.read()
    longdesc = match('^"""(.*?)"""', contents, S).group(1)
    version = match(r'[\s\S]*__version__[^\'"]+[\'"]([^\'"]+)[\'"]', contents).group(1)
    del contents

setup(
    name="mw-bulk-client",
    version=version,
    description="A MediaWiki client for bulk queries, uploads and edits.",
    long_description=longdesc,
    long_description_content_type='text/x-rst',
    author="mw-bulk-client contributors",
    license="MIT",
    classifiers=[
        'Development Status :: 4 - Beta',
        'Intended Audience :: Developers',
        'Topic :: Internet :: WWW/HTTP :: Dynamic Content :: Wiki',
        'License :: OSI Approved :: MIT License',
        'Programming Language :: Python :: 3',
    ],
    keywords='mediawiki api requests bot',
    packages=["mw_bulk_client", "mw_bulk_client.tests"],
    install_requires=['requests'],
    extras_require={'test': ['pytest']},
    python_requires='>=3.6',
)
