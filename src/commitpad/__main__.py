"""Allow ``python -m commitpad``."""

from commitpad.main import main

main()
