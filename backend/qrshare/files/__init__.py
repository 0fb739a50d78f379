"""File storage module for qrshare.

Uploaded files are kept as flat files in one upload directory shared by
all sessions. A session's files are deleted when the session is deleted
or expires.
"""
