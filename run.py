"""
Entry Point Script (Bootstrap)
==============================
Runs the command-line interface from a source checkout.

Why is this file needed?
------------------------
1. It is located outside the 'src' package to act as a convenient runner.
2. It modifies 'sys.path' so 'calprojector' resolves without installing it.

Usage:
    $ python run.py --model gear --resolution 128 --projections 180
"""
import os
import sys

current_dir: str = os.path.dirname(os.path.abspath(__file__))
src_path: str = os.path.join(current_dir, 'src')
sys.path.insert(0, src_path)

from calprojector.__main__ import main

if __name__ == "__main__":
    sys.exit(main())
