"""Entry point for running walkmap as a module.

Usage:
    python -m walkmap [command] [options]
"""

from walkmap.cli import main

if __name__ == "__main__":
    main()
