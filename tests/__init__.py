"""
unitsync Test Suite

This directory contains tests for the unitsync daemon:
- Reconciliation pass behaviour against a fake service manager
- Scheduler loop timing with scripted and real directory watchers
- systemctl control interface with a patched subprocess layer
- Settings and command line interface
"""
