"""
Bundled scenario scripts.

Each module here is a self-contained scenario that ``loadcheck run``
can execute directly:

- :mod:`.user_profile`: one-time login, then authenticated profile reads
"""
