"""
Runtime context: one configured ledger with its journal, key and sinks.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from supplyledger.core.config import LedgerConfig, load_config
from supplyledger.core.crypto import Ed25519KeyManager
from supplyledger.core.events import EventSink, FanoutEventSink, LoggingEventSink
from supplyledger.core.journal import FileJournal
from supplyledger.core.ledger import ProductLedger


logger = logging.getLogger(__name__)


@dataclass
class RuntimeContext:
    """Everything a host process needs to serve a persistent ledger."""

    config:      LedgerConfig
    key_manager: Ed25519KeyManager
    journal:     FileJournal
    ledger:      ProductLedger
    sink:        FanoutEventSink

    @classmethod
    def from_config(
        cls,
        config: Optional[LedgerConfig] = None,
        sink:   Optional[EventSink] = None,
    ) -> "RuntimeContext":
        """
        Open (or create) the ledger described by config.

        The signing key is loaded from config.signing_key_path, or generated
        and saved there on first run. A new ledger needs config.admin; an
        existing journal must agree with it when it is set.
        """
        config = config or load_config()

        key_manager = Ed25519KeyManager.load_or_create(config.signing_key_path)
        journal     = FileJournal(str(config.journal_dir), key_manager=key_manager)

        fanout = FanoutEventSink([LoggingEventSink()])
        if sink is not None:
            fanout.add(sink)

        ledger = ProductLedger.open(
            journal,
            admin=    config.admin,
            statuses= config.status_scale if len(journal) == 0 else None,
            sink=     fanout,
            require_owner_for_status=(
                config.require_owner_for_status if len(journal) == 0 else None
            ),
        )
        logger.debug("runtime context ready at %s", config.journal_dir)

        return cls(
            config=      config,
            key_manager= key_manager,
            journal=     journal,
            ledger=      ledger,
            sink=        fanout,
        )

    @classmethod
    def from_path(cls, config_file: Optional[Path] = None) -> "RuntimeContext":
        return cls.from_config(load_config(config_file))

    def __repr__(self) -> str:
        return (
            f"RuntimeContext("
            f"home={str(self.config.home)!r}, "
            f"journal_records={len(self.journal)})"
        )
