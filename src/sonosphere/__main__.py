"""Allow running as: python -m sonosphere"""

from sonosphere.cli import main

main()
