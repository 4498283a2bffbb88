"""
svgnft_deploy.cli
=================

Typer command line, installed as the `svgnft-deploy` console script.

    $ svgnft-deploy --help
    $ python -m svgnft_deploy deploy --tags all
"""

from .main import app, main

__all__ = ["app", "main"]
