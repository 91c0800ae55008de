"""Entry point for running surrealigrate as a module.

Usage:
    python -m surrealigrate migrate
    python -m surrealigrate rollback --to 3
    python -m surrealigrate info
"""

from .cli import main

if __name__ == "__main__":
    main()
