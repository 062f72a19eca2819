"""
Allow running VeriSearch as a module: ``python -m verisearch``.

This delegates to the CLI entry point so that both
``verisearch`` (console script) and ``python -m verisearch``
behave identically.
"""

from verisearch.cli import main

if __name__ == "__main__":
    main()
