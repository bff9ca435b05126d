"""
agqr - periodic radio recording scheduler with leaderless S3 consolidation.

Packages:
- agqr.core: errors, logging, settings
- agqr.timetable: Program/Schedule values, timetable parser and sources
- agqr.scheduling: workers, their event loop, the scheduler
- agqr.storage: object store backends (S3, local directory)
- agqr.coordination: work groups, vote/lock protocol, public listing
- agqr.cli: the ``agqr`` command
"""

__version__ = "0.3.0"
