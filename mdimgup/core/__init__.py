"""
Core logic for uploading Markdown images and managing storage profiles.

This package is framework-agnostic. It doesn't import FastAPI, boto3,
Pillow or any persistence library; those live behind the protocols in
``ports`` and are wired together by the API layer and scripts.
"""
