#!/usr/bin/env python3
"""
Main entry point for Mnemonic Maker.
Runs the command line interface from a source checkout.
"""

from mnemonic_maker.app import main

if __name__ == "__main__":
    main()
