"""fabtrail: change diffing and audit trail for textile order records."""

__version__ = "0.1.0"
