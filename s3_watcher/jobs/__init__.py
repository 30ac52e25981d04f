"""
Jobs package for matching events and running external commands.

This package provides the job table loader, the filter engine and
dispatcher, and the runner that spawns job processes.
"""
