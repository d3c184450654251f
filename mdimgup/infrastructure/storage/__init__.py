"""
Object storage integration for uploaded images.

Supports Cloudflare R2, AWS S3 and S3-compatible services via boto3.
Includes mock mode for local development without credentials.
"""
