"""Batch job plumbing: progress files, run tracking, loop runner and maintenance."""
