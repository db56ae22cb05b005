#!/usr/bin/env python3
"""Entry point for hexbuild CLI when run as python -m hexbuild.cli."""

if __name__ == "__main__":
    from hexbuild.cli.main import main

    main()
