"""
Persistence core for the MuscleRise backend.

User profiles and the singleton admin record live either in a remote
MongoDB database or in local JSON files. This package provides both
backends, the per-call failover between them, and the operator tools that
keep the two copies consistent.
"""
