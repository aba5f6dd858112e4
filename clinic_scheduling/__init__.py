"""Clinic availability and booking engine."""
