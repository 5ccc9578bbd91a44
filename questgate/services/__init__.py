"""Workflow services: lifecycle, shadow drafts, edit requests, similarity and validation."""
