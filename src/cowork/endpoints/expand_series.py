#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
import logging

import hydra
from hydra.utils import instantiate
from omegaconf import DictConfig, OmegaConf

from cowork.booking.recurrence import RecurrenceExpander, SeriesExpansion
from cowork.endpoints.refresh_availability import get_config_path
from cowork.store.record_store import RecordStore

logger = logging.getLogger(__name__)


def run_expansion(cfg: DictConfig) -> SeriesExpansion:
    store: RecordStore = instantiate(cfg.store)
    expander = RecurrenceExpander(
        store, timezone=cfg.timezone, max_occurrences=cfg.max_occurrences
    )
    until = str(cfg.until) if cfg.until is not None else None
    return expander.expand_series(
        cfg.event_id, cfg.frequency, count=cfg.count, until=until
    )


@hydra.main(config_name="expand_series", config_path=get_config_path())
def expand_series(cfg: DictConfig):
    if cfg.debug:
        logger.info(OmegaConf.to_yaml(cfg, resolve=True))
    result = run_expansion(cfg)
    for instance in result.created:
        logger.info(f"Created {instance.id} starting {instance.start_date.isoformat()}")
    logger.info(
        f"Created {result.created_count} recurring event(s) in series {result.series_id}"
    )
    result.raise_for_partial_failure()


if __name__ == "__main__":
    expand_series()
