"""
Core — Constants

Shared constants: audit action names and API paging limits.

@file core/constants.py
"""

AUDIT_ACTION_CREATE = 'CREATE'
AUDIT_ACTION_UPDATE = 'UPDATE'
AUDIT_ACTION_DELETE = 'DELETE'
AUDIT_ACTION_STATUS_CHANGE = 'STATUS_CHANGE'

DEFAULT_PAGE_SIZE = 25
MAX_PAGE_SIZE = 200
