"""
mdimgup - upload the images of Markdown documents to object storage.

This package contains the complete application:
- core: Framework-agnostic upload pipeline, profiles and history
- infrastructure: Storage, image and persistence integrations
- api: FastAPI routes and dependencies
- config: Application configuration
"""

__version__ = "0.1.0"
