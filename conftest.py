"""Pytest configuration for root."""

import os
import sys

# Flat layout: make config.py, api/ and imagelingo/ importable without install
sys.path.append(os.getcwd())
