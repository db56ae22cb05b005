"""Entry point for running hexbuild as a module (python -m hexbuild)."""

from hexbuild.cli.main import main

if __name__ == "__main__":
    main()
