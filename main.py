#!/usr/bin/env python3
"""
SizeFit - Main Entry Point
Compress images and GIFs to a target file size, or serve the HTTP API

    python main.py compress photo.jpg --target-mb 0.5
    python main.py serve
"""

from sizefit.cli import main

if __name__ == '__main__':
    main()
