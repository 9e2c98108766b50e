from __future__ import annotations

import logging

from proposal_acceptance.app import create_app
from proposal_acceptance.config import Settings
from proposal_acceptance.gateway import HttpProposalGateway, InMemoryProposalGateway, ProposalGateway
from proposal_acceptance.logging_config import setup_logging

# Environment configuration
settings = Settings.from_env()

# Setup logging
setup_logging(environment=settings.environment, project_id=settings.project_id, level=settings.log_level)
logger = logging.getLogger(__name__)

# Use local fixtures in dev, the portal backend everywhere else
gateway: ProposalGateway
if settings.is_dev:
    gateway = InMemoryProposalGateway.from_directory(settings.fixtures_dir)
else:
    gateway = HttpProposalGateway(base_url=settings.api_base_url, timeout=settings.request_timeout)

app = create_app(settings=settings, gateway=gateway)

logger.info(
    "Proposal acceptance API configured",
    extra={"environment": settings.environment, "gateway": type(gateway).__name__},
)
