#!/usr/bin/env python3
"""Run the OpenWebIf bridge for the receivers in the configured JSON file."""

from __future__ import annotations

import sys

from openwebif_tv.cli import main

if __name__ == "__main__":
    sys.exit(main())
