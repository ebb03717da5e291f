"""Persistence package: assembles tracking records from PostgreSQL."""
