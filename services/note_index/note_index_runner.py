"""Note index runner entry point.

Brings the embedding store in line with the note vault in one pass and
exits. Only notes whose stored embedding is missing or stale are re-embedded
unless REINDEX_FORCE is set.

Usage:
    python -m services.note_index.note_index_runner
"""

import asyncio

from services.note_index.NoteIndexService import NoteIndexService
from shared.clients.embed.EmbedClientManager import EmbedClientManager
from shared.clients.source.vault.NoteSourceVault import NoteSourceVault
from shared.clients.storage.StorageClientManager import StorageClientManager
from shared.helper.HelperConfig import HelperConfig
from shared.logging.logging_setup import setup_logging
from shared.models.config import IndexSettings
from shared.models.note import ReindexProgress, ReindexResult


def _log_progress(logger, progress: ReindexProgress) -> None:
    # every 10% is enough for a terminal
    step = max(progress.total // 10, 1)
    if progress.processed % step == 0 or progress.processed == progress.total:
        logger.info("Reindex progress: %d/%d (%d%%)", progress.processed, progress.total, progress.percentage)


async def main() -> ReindexResult | None:
    """Run one reindex of the configured vault."""
    logger = setup_logging()
    config = HelperConfig(logger=logger)
    settings = IndexSettings.from_helper_config(config)
    force = config.get_bool_val("REINDEX_FORCE", default=False)

    storage_client = StorageClientManager(helper_config=config).get_client()
    embed_client = EmbedClientManager(helper_config=config).get_client()
    note_source = NoteSourceVault(helper_config=config)

    try:
        ## embedding is required, there is no point in indexing without it
        try:
            await embed_client.boot()
            response = await embed_client.do_healthcheck()
            if not response.is_success:
                logger.warning(
                    "Embed client '%s' healthcheck returned status %d. Trying anyway.",
                    embed_client.get_engine_name(),
                    response.status_code,
                )
        except Exception as e:
            logger.error(f"Error booting Embed client {embed_client.get_engine_name()}: {e}. Aborting.")
            return None

        service = NoteIndexService(
            helper_config=config,
            settings=settings,
            storage_client=storage_client,
            embed_client=embed_client,
            note_source=note_source,
        )
        result = await service.reindex_all(
            force=force,
            progress_callback=lambda progress: _log_progress(logger, progress),
        )
        logger.info(
            "Indexed %d notes: %d updated, %d skipped, %d errors.",
            result.total, result.updated, result.skipped, result.errored,
            color="green",
        )
        return result
    finally:
        await embed_client.close()


if __name__ == "__main__":
    asyncio.run(main())
