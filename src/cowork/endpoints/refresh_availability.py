#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
import logging
from importlib import resources

import hydra
from hydra.utils import instantiate
from omegaconf import DictConfig, OmegaConf

from cowork.booking.availability import AvailabilityReporter
from cowork.booking.booking_repository import BookingRepository
from cowork.booking.room_catalog import RoomCatalog
from cowork.constants import ENDPOINT_CONFIGS_ROOT
from cowork.notifications.channel import NotificationChannel
from cowork.store.record_store import RecordStore

logger = logging.getLogger(__name__)


def get_config_path() -> str:
    return str(resources.files(ENDPOINT_CONFIGS_ROOT) / ".")


def build_reporter(cfg: DictConfig) -> AvailabilityReporter:
    store: RecordStore = instantiate(cfg.store)
    channel: NotificationChannel = instantiate(cfg.channel)
    return AvailabilityReporter(
        catalog=RoomCatalog(store),
        repository=BookingRepository(store, timezone=cfg.timezone),
        channel=channel,
        channel_id=cfg.channel_id,
        message_id=cfg.message_id,
        timezone=cfg.timezone,
        portal_url=cfg.portal_url,
    )


@hydra.main(config_name="refresh_availability", config_path=get_config_path())
def refresh_availability(cfg: DictConfig):
    if cfg.debug:
        logger.info(OmegaConf.to_yaml(cfg, resolve=True))
    if not cfg.channel_id:
        raise ValueError("Room availability channel not configured")
    result = build_reporter(cfg).refresh_feed()
    for status in result.statuses:
        logger.info(f"{status.room.name}: {status.status}")
    if not result.delivered:
        raise SystemExit("Failed to update the availability message")


if __name__ == "__main__":
    refresh_availability()
