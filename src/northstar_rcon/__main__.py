"""Allow running as `python -m northstar_rcon`."""

from .cli import main

if __name__ == "__main__":
    main()
