"""Wire the RFP desk components together.

Every component receives its collaborators explicitly; this module is the one
place that decides which concrete client, repositories and transport are used.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from config.settings import Settings, settings as default_settings
from repositories import proposal_repo, rfp_repo, vendor_repo
from services.comparison import ComparisonEngine
from services.correlation import CorrelationEngine
from services.dispatch_tracker import DispatchTracker
from services.extraction_oracle import CompletionClient, ExtractionOracle
from services.imap_poller import ImapPoller
from services.inbound_pipeline import InboundPipeline
from services.llm_client import ChatCompletionClient
from services.proposal_lifecycle import ProposalLifecycle
from services.rfp_mailer import MailTransport, RfpMailer
from services.rfp_service import RfpService

logger = logging.getLogger(__name__)


def init_schemas() -> None:
    rfp_repo.init_schema()
    vendor_repo.init_schema()
    proposal_repo.init_schema()


@dataclass
class RfpDesk:
    oracle: ExtractionOracle
    rfps: RfpService
    tracker: DispatchTracker
    correlation: CorrelationEngine
    lifecycle: ProposalLifecycle
    comparison: ComparisonEngine
    pipeline: InboundPipeline
    poller: ImapPoller
    mailer: Optional[RfpMailer] = None


def build_desk(
    *,
    config: Optional[Settings] = None,
    client: Optional[CompletionClient] = None,
    transport: Optional[MailTransport] = None,
    sleep_fn: Callable[[float], None] = time.sleep,
    imap_connection_factory=None,
) -> RfpDesk:
    config = config or default_settings
    oracle = ExtractionOracle(
        client or ChatCompletionClient(config=config),
        sleep_fn=sleep_fn,
        config=config,
    )
    tracker = DispatchTracker()
    correlation = CorrelationEngine()
    lifecycle = ProposalLifecycle(oracle, config=config)
    pipeline = InboundPipeline(correlation, lifecycle)
    desk = RfpDesk(
        oracle=oracle,
        rfps=RfpService(oracle),
        tracker=tracker,
        correlation=correlation,
        lifecycle=lifecycle,
        comparison=ComparisonEngine(oracle, config=config),
        pipeline=pipeline,
        poller=ImapPoller(pipeline, config=config, connection_factory=imap_connection_factory),
        mailer=RfpMailer(transport, tracker, config=config) if transport else None,
    )
    logger.info("RFP desk initialised (model=%s)", config.llm_model)
    return desk


__all__ = ["RfpDesk", "build_desk", "init_schemas"]
