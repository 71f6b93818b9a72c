"""Procedures: same numbering as policies; archive/unarchive are attributed."""
