"""Entry point for running dockyard as a module.

This allows running the CLI with:
    python -m dockyard
"""

from dockyard.cli.main import main

if __name__ == "__main__":
    main()
