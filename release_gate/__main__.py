import sys

from release_gate.cli import main

if __name__ == "__main__":
    sys.exit(main())
