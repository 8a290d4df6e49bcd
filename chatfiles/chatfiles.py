import logging
from collections.abc import Iterable

from chatfiles.attachment.preview import PreviewGenerator
from chatfiles.attachment.service import AttachmentService
from chatfiles.config import Config
from chatfiles.db.db_loader import get_db
from chatfiles.events import EventService
from chatfiles.ids import SonyflakeIdGenerator
from chatfiles.notifier import Notifier, UserDirectory
from chatfiles.store.store_loader import get_store
from chatfiles.telemetry import setup_telemetry

logger = logging.getLogger(__name__)


def create_service(
    config: Config,
    users: UserDirectory | None = None,
    notifiers: Iterable[Notifier] = (),
    identity: int = 0,
) -> AttachmentService:
    """Wire an AttachmentService from configuration.

    Args:
        config: Validated configuration.
        users: Directory used to resolve message authors; defaults to the database.
        notifiers: Receivers of message events.
        identity: Id of the acting user; see AttachmentService.with_identity.
    """
    logging.getLogger("chatfiles").setLevel(config.log_level)
    setup_telemetry(config.app_name, config.telemetry)

    id_generator = SonyflakeIdGenerator(machine_id=config.machine_id)
    db = get_db(config.db, id_generator)
    store = get_store(config.store) if config.store is not None else None
    if store is None:
        logger.warning("No content store configured, uploads will be rejected")

    events = EventService(users if users is not None else db, list(notifiers))

    preview_generator = None
    if store is not None:
        preview_generator = PreviewGenerator(
            store,
            max_width=config.preview.max_width,
            max_height=config.preview.max_height,
            jpeg_quality=config.preview.jpeg_quality,
        )

    return AttachmentService(
        store=store,
        db=db,
        events=events,
        id_generator=id_generator,
        identity=identity,
        preview_generator=preview_generator,
    )


def create_service_from_yaml(
    config_path: str,
    users: UserDirectory | None = None,
    notifiers: Iterable[Notifier] = (),
) -> AttachmentService:
    config = Config.parse_yaml(config_path)
    return create_service(config, users=users, notifiers=notifiers)
