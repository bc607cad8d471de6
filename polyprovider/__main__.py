"""
Polyprovider - one async contract for many AI backends

Registers chat, embedding, speech and transcription providers behind a
shared capability interface, validates their configuration, tracks
on-device model installs and dispatches generation calls.

Quick Start:
    pip install -e .
    polyprovider list --category speech
"""

from polyprovider.cli.cli import main

if __name__ == "__main__":
    main()
