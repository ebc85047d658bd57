"""
Allow running sigcontract as a module:

    python3 -m sigcontract <command> [options]

Delegates to sigcontract.cli:main().
"""
import sys
from .cli import main

sys.exit(main())
