#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Continuous mail printer daemon.
Polls the source folder every PollInterval seconds and prints new messages.
Reconnects lazily when the session has been dropped.

Usage: runloop.py [settings.yaml [debug-level]]
"""

import sys

import monitor

sys.exit(monitor.main(sys.argv[1:], loop=True))
