"""
Shared database plumbing: declarative bases, engine construction and the
retrying transaction runner.
"""
