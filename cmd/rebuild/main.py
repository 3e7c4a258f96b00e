"""
Index Rebuild Entry Point.

One-shot operator command that runs a rebuild in the foreground and
exits non-zero if it failed.
"""
import asyncio
import sys

from dotenv import load_dotenv

from config.settings import get_settings
from internal.container import Container
from internal.domain.errors import DomainValidationError
from internal.usecase.rebuild_index import RebuildMode
from pkg.logger.logger import get_logger, setup_logging


# Load environment variables
load_dotenv()

settings = get_settings()

setup_logging(
    level=settings.log_level,
    json_format=settings.log_format == "json",
)

logger = get_logger(__name__)

COMMANDS = ("sync", "force-sync", "clear-and-rebuild", "reconfigure")


async def run_rebuild(mode: RebuildMode) -> dict:
    """
    Run a rebuild with fresh connections.

    Args:
        mode: Rebuild mode.

    Returns:
        Final run status.
    """
    container = await Container.create(settings)
    try:
        return await container.services.rebuild.run(mode)
    finally:
        await container.close()


def _usage() -> None:
    print("Usage:")
    print("  python main.py sync               # Configure and sync categories, then products")
    print("  python main.py force-sync         # Same as sync")
    print("  python main.py clear-and-rebuild  # Delete all documents and rebuild")
    print("  python main.py reconfigure        # Reapply index settings only")


def main() -> None:
    """Main entry point."""
    if len(sys.argv) != 2 or sys.argv[1] not in COMMANDS:
        _usage()
        sys.exit(1)

    try:
        mode = RebuildMode.parse(sys.argv[1])
    except DomainValidationError as e:
        print(e.message)
        sys.exit(1)

    result = asyncio.run(run_rebuild(mode))
    if result["status"] not in ("succeeded", "partial"):
        logger.error("Rebuild did not succeed", **result)
        sys.exit(1)


if __name__ == "__main__":
    main()
