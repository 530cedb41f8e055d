#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Single-run mail printer.
Connects to IMAP, prints unread messages once, moves them, and exits.

Usage: runonce.py [settings.yaml [debug-level]]
"""

import sys

import monitor

sys.exit(monitor.main(sys.argv[1:]))
