"""
Common building blocks for the feedback intake pipeline.

Modules:
- envelope: versioned AES-256-CBC envelope shared with the collection server
- images: upload normalization to bounded JPEG
- media: base64/data-URI encoding and signature rasterization
- genderize: gender suggestion client for the identification step
"""

__all__ = [
    "envelope",
    "genderize",
    "images",
    "media",
]
