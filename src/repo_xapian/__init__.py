"""Incrementally feed version-controlled repositories and attachments to Xapian."""
