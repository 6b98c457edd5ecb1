"""Proof Pack service layer.

Business logic and external integrations:
- ProofPackService: pack lifecycle, documents and Pack Health recompute
- ReviewWorkflow: QA review queue, decisions and findings
- DisclosureGateway: share links, NDA acceptance and access logging
- EligibilityFilter: buyer directory and introduction requests
- IdentityClient, ObjectStoreClient, NotificationDispatcher: collaborators
- JobQueueService, AuditLogService: background jobs and the audit trail
"""

from proofpack.services.disclosure import DisclosureGateway
from proofpack.services.eligibility import EligibilityFilter
from proofpack.services.proof_packs import ProofPackService
from proofpack.services.review import ReviewWorkflow

__all__ = [
    "DisclosureGateway",
    "EligibilityFilter",
    "ProofPackService",
    "ReviewWorkflow",
]
