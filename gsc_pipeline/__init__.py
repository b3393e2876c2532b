"""Search Console sync and URL-indexing pipeline"""

__version__ = "0.1.0"
