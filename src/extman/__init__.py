"""
extman - Extension Manager

Installs, updates and removes extensions published in GitHub repositories,
tracking what is installed in a local manifest.
"""

__version__ = "0.1.0"
