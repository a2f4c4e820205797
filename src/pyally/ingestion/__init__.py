"""Ingestion helpers.

Pure functions that turn vendor payloads into canonical codes and typed
values before anything is compared against, or written to, local state.
"""
