"""Community ads backend: campaign lifecycle and ad serving engine.

Having this file ensures the 'adserver' directory is recognized as a standard
Python package during test discovery.
"""

__all__: list[str] = []
