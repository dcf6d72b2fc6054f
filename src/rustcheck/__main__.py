"""Allow `python -m rustcheck`."""

from rustcheck.cli import main

if __name__ == "__main__":
    main()
