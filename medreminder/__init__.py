"""Medication reminder scheduling engine.

Computes which future timestamps should produce a dose reminder for each
medication schedule and reconciles them with what is already persisted and
armed. Runs as a Celery worker next to the existing backend.
"""
