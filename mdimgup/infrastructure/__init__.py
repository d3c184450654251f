"""
Infrastructure layer - external service integrations.

Each subdirectory wraps an external dependency:
- storage: Object storage (R2/S3/S3-compatible) via boto3
- images: Image resizing via Pillow
- persistence: Metadata JSON file and encrypted credential file

These wrappers implement the protocols in mdimgup.core.ports.
"""
