"""
Binary scanning engines.

Contains the container readers, the instruction decoder and the
scan-and-classify engine.
"""
