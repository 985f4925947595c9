"""dataset-sync CLI.

Command-line access to the local datasets of the configured identity.

Usage:
    dsync put <key> <value>     Write a record
    dsync get <key>             Read a record
    dsync list                  Show the records of the current dataset
    dsync sync                  Synchronize with the hub
    dsync serve                 Run the hub server
"""

from dataset_sync.cli.main import app, main

__all__ = ["app", "main"]
