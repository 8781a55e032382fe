"""
Maniac CLI Entry Point
======================

Allows running maniac as a module: python -m maniac
"""

from maniac.cli.main import main

if __name__ == "__main__":
    main()
