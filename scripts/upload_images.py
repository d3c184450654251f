#!/usr/bin/env python3
"""
Upload the images of a Markdown file from the command line.

Uses the same profiles, credentials and history as the API (everything
under MDIMGUP_DATA_DIR), so uploads made here can be undone there and
the other way round.

Usage:
    python scripts/upload_images.py upload post.md
    python scripts/upload_images.py upload post.md --profile <id> --dry-run
    python scripts/upload_images.py history --document post.md
    python scripts/upload_images.py undo <record-id> --delete

Requires:
    - .env file (or environment) with MDIMGUP_* settings
    - an active profile with credentials, or legacy settings
"""

import asyncio
import logging
import sys
from pathlib import Path

# Add project root to path so we can import our modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

from mdimgup.api.dependencies import ServiceContainer, build_services  # noqa: E402
from mdimgup.config.settings import get_settings  # noqa: E402
from mdimgup.core.errors import DocumentMismatchError, MdImgUpError  # noqa: E402
from mdimgup.core.history import UndoMode, format_bytes, format_time_ago  # noqa: E402
from mdimgup.core.uploader import document_uri, path_from_document_uri  # noqa: E402

logger = logging.getLogger("mdimgup.scripts.upload_images")


async def upload(services: ServiceContainer, args) -> bool:
    document = Path(args.file)
    if not document.is_file():
        print(f"ERROR: Cannot find {args.file}")
        return False

    profiles = services.profiles
    profile_id = args.profile or profiles.require_resolved_profile(args.workspace).id
    profile, credentials = await profiles.get_profile_with_credentials(profile_id)
    print(f"Using profile: {profile.name} ({profile.provider.display_name}, bucket {profile.bucket})")

    text = document.read_text(encoding="utf-8")
    result = await services.orchestrator.upload_document(text, document, profile, credentials)

    for item in result.items:
        line = f"  [{item.outcome.value}] {item.token}"
        if item.url:
            line += f" -> {item.url}"
        if item.error:
            line += f" ({item.error.reason})"
        print(line)

    if args.dry_run:
        print("\n=== DRY RUN - document not modified ===")
    elif result.text != text:
        document.write_text(result.text, encoding="utf-8")

    print(f"\n{result.message}")
    return result.failed == 0


async def show_history(services: ServiceContainer, args) -> bool:
    uri = document_uri(Path(args.document)) if args.document else None
    records = services.ledger.get_records(document_uri=uri, limit=args.limit)
    if not records:
        print("No upload history")
        return True

    for record in records:
        print(
            f"{record.id}  {format_time_ago(record.uploaded_at):>14}  "
            f"{format_bytes(record.file_size):>9}  {record.profile_name}  "
            f"{record.original_path} -> {record.uploaded_url}"
        )
    return True


async def undo(services: ServiceContainer, args) -> bool:
    record = services.ledger.get_record(args.record_id)
    if record is None:
        print(f"ERROR: No history record {args.record_id}")
        return False

    document = Path(args.document) if args.document else path_from_document_uri(record.document_uri)
    if not document.is_file():
        print(f"ERROR: Cannot find {document}")
        return False

    mode = UndoMode.LINK_AND_DELETE if args.delete else UndoMode.LINK_ONLY
    result = await services.undo.undo(record, document.read_text(encoding="utf-8"), mode)

    try:
        result.raise_for_status()
    except DocumentMismatchError as e:
        print(f"ERROR: {e}")
        return False

    document.write_text(result.text, encoding="utf-8")
    print(result.message)
    return True


def main():
    import argparse

    parser = argparse.ArgumentParser(description='Upload Markdown images to object storage')
    commands = parser.add_subparsers(dest='command', required=True)

    upload_parser = commands.add_parser('upload', help='Upload images referenced by a Markdown file')
    upload_parser.add_argument('file', help='Markdown file to process')
    upload_parser.add_argument('--profile', help='Profile ID (default: active profile)')
    upload_parser.add_argument('--workspace', help='Workspace used to resolve the active profile')
    upload_parser.add_argument('--dry-run', action='store_true', help='Upload but don\'t rewrite the file')

    history_parser = commands.add_parser('history', help='List recent uploads')
    history_parser.add_argument('--document', help='Only uploads from this Markdown file')
    history_parser.add_argument('--limit', type=int, default=20, help='Number of records to show')

    undo_parser = commands.add_parser('undo', help='Revert one upload in its document')
    undo_parser.add_argument('record_id', help='History record ID')
    undo_parser.add_argument('--document', help='Document to revert in (default: where it was uploaded from)')
    undo_parser.add_argument('--delete', action='store_true', help='Also delete the object from storage')

    args = parser.parse_args()

    settings = get_settings()
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=settings.log_level.upper(),
    )

    handlers = {'upload': upload, 'history': show_history, 'undo': undo}

    try:
        services = build_services(settings)
        success = asyncio.run(handlers[args.command](services, args))
    except MdImgUpError as e:
        logger.error("Command failed", extra={"command": args.command, "error": str(e)})
        print(f"ERROR: {e}")
        success = False

    sys.exit(0 if success else 1)


if __name__ == '__main__':
    main()
