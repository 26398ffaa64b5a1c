"""Candidate loop: select, interpolate, execute, record.

Why not a task queue?
~~~~~~~~~~~~~~~~~~~~~
One operator drives one assistant over many small units of work (files,
functions, lines). The loop is strictly sequential, so the only durable state
is a flat append-only ignored list per task directory. Larger workloads are
split statically with ``--shard INDEX/TOTAL``: each process hashes candidate
keys and keeps only its own share, with no runtime coordination.
"""
