"""Allow ``python -m window``."""
from window.cli import main

main()
