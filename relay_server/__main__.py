"""Allow `python -m relay_server`."""

from .main import main

main()
