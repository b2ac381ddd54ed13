"""
CourseShelf service.

A personal video-course library that tracks local and remote lectures and
streams them to the browser with HTTP byte-range support.
"""

__version__ = "0.1.0"
