"""
WAL Continuity - parallel WAL archiving, restoring and backup selection

Drives an external pgBackRest-compatible executable to push and pull
PostgreSQL WAL segments through a local spool directory, and resolves
which backup a point-in-time recovery should start from.
"""

__version__ = "0.1.0"
__author__ = "Systems Engineering Portfolio"
