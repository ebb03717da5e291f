"""
Cache package for the Tracking Service.

Provides a Redis hash store for serialized tracking records with an
explicit TTL applied either to the whole hash or to each field.
"""
