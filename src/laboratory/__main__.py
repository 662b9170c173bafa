"""Executable entrypoint for `python -m laboratory`."""
from laboratory.cli import main

if __name__ == "__main__":
    main()
