"""
respawn - A self-healing process launcher.

Runs a worker process behind a small liveness endpoint on a random free port,
restarts the worker whenever it crashes, and keeps declared dependencies up to
date with a one-shot update pass.
"""

__version__ = "0.1.0"
