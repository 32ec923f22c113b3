#!/usr/bin/env python3
"""

Usage:
    python Main.py [--url http://localhost:8080/] [--samples 10]

Or
    python -m server_date [--url http://localhost:8080/] [--samples 10]
"""

from server_date.__main__ import main

if __name__ == "__main__":
    main()
