"""
bucketprobe: discover the practical limits of a cloud storage bucket.

Finds the largest object size and object count a bucket accepts and which
Unicode characters and sequences work in object keys.
"""

__version__ = "0.1.0"
