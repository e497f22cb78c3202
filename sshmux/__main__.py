"""
Allow `python -m sshmux`.
"""

from .cli import main

if __name__ == "__main__":
    main()
