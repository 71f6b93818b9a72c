"""
Document lifecycle engine shared by every entity family.

- Categories hold ordered records (ordering, categories)
- Records carry independent archived/highlighted/approved flags (lifecycle)
- Version history and reviews are append-only (versions, reviews)
- Batch actions apply one transition to many records at once (bulk)

Every mutating operation takes the acting user explicitly, runs as one
transaction and returns a Result instead of raising for expected failures.
"""
