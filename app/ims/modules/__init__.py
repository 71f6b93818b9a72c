"""
Entity families live under this package.

Each family owns its four tables (categories, records, versions, reviews) and
a descriptor in ``family.py``; all behaviour comes from ``app.ims.core``.
"""
