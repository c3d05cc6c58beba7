"""Entry point for 'python -m profilestub' command.

This module allows the ProfileStub CLI to be invoked using
'python -m profilestub normalize structure.json'.
"""

from profilestub.cli import main

if __name__ == "__main__":
    main()
