"""Token and NDA gated disclosure of approved packs.

A share link goes through three phases:

1. Info: anyone holding the token sees a summary (company, industry,
   overall score, document count). No document metadata is returned.
2. NDA: an authenticated viewer accepts the grant's current NDA version.
   Acceptance is per viewer; publishing a new version requires everyone
   to accept again.
3. View: a viewer with a current acceptance sees the full pack and may
   request time-limited download URLs.

Unknown, expired and revoked tokens all fail with the same
AccessDeniedError; the actual reason is only logged. Every phase writes an
access log entry before returning, and a failed log write fails the
request with DependencyError.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import secrets
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError

from proofpack.core.errors import (
    AccessDeniedError,
    DependencyError,
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from proofpack.core.settings import get_settings
from proofpack.db.models.base import AccessAction, PackStatus
from proofpack.db.models.disclosure import AccessLogEntry, NDAAcceptance, ShareGrant
from proofpack.db.models.packs import Document, ProofPack
from proofpack.db.models.smes import SMEProfile
from proofpack.services.audit_log import AuditEventType, AuditLogService
from proofpack.services.notifications import NotificationEvent, NotificationKind
from proofpack.services.proof_packs import pack_health
from proofpack.services.scoring import ELIGIBILITY_THRESHOLD, PackHealth, is_eligible
from proofpack.services.storage import StorageError

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from proofpack.core.config import Settings
    from proofpack.services.access import Actor
    from proofpack.services.storage import ObjectStoreClient

logger = logging.getLogger(__name__)

TOKEN_BYTES = 32
ACCESS_LOG_PAGE_SIZE = 100


def hash_token(token: str) -> str:
    """SHA-256 hex digest under which a share token is stored."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


@dataclass(frozen=True, slots=True)
class ClientInfo:
    """Network details of the caller, recorded with disclosure events."""

    ip_address: str | None = None
    user_agent: str | None = None


@dataclass(frozen=True, slots=True)
class ShareLink:
    """A newly created grant and its raw token (only ever returned here)."""

    grant: ShareGrant
    token: str


@dataclass(frozen=True, slots=True)
class ShareSummary:
    pack_title: str
    company_name: str
    industry: str | None
    overall_score: int
    document_count: int


@dataclass(frozen=True, slots=True)
class NDAStatus:
    accepted: bool
    nda_version: str


@dataclass(frozen=True, slots=True)
class NDAResult:
    status: NDAStatus
    newly_accepted: bool
    events: list[NotificationEvent] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class PackView:
    pack: ProofPack
    health: PackHealth
    documents: list[Document]
    sme: SMEProfile


@dataclass(frozen=True, slots=True)
class DownloadHandle:
    document_id: uuid.UUID
    file_name: str
    url: str
    expires_at: datetime


class DisclosureGateway:
    """Share grants, the NDA gate and the access log."""

    def __init__(
        self,
        session: AsyncSession,
        settings: Settings | None = None,
        object_store: ObjectStoreClient | None = None,
    ) -> None:
        self._session = session
        self._settings = settings or get_settings()
        self._object_store = object_store

    def _hash_ip(self, ip_address: str | None) -> str | None:
        if not ip_address:
            return None
        salt = self._settings.disclosure.ip_hash_salt.get_secret_value()
        return hashlib.sha256(f"{salt}:{ip_address}".encode()).hexdigest()

    # -------------------------------------------------------------------------
    # Token resolution and access logging
    # -------------------------------------------------------------------------

    async def _resolve_grant(self, token: str) -> ShareGrant:
        """Find the live grant for a token or deny uniformly."""
        token_hash = hash_token(token)
        result = await self._session.execute(
            select(ShareGrant)
            .where(ShareGrant.token_hash == token_hash)
            .execution_options(populate_existing=True)
        )
        grant = result.scalar_one_or_none()

        reason = None
        if grant is None:
            reason = "unknown token"
        elif grant.revoked:
            reason = "revoked"
        elif grant.expires_at is not None and grant.expires_at <= datetime.now(UTC):
            reason = "expired"

        if reason is not None:
            logger.info(
                "Share access denied: reason=%s, token_hash=%s",
                reason,
                token_hash[:12],
            )
            raise AccessDeniedError(reason)
        return grant

    async def _current_acceptance(self, grant: ShareGrant, user_id: str) -> NDAAcceptance | None:
        result = await self._session.execute(
            select(NDAAcceptance)
            .where(
                NDAAcceptance.share_grant_id == grant.share_grant_id,
                NDAAcceptance.user_id == user_id,
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _require_nda(self, grant: ShareGrant, user_id: str) -> None:
        acceptance = await self._current_acceptance(grant, user_id)
        if acceptance is None or acceptance.nda_version != grant.nda_version:
            logger.info(
                "Share access denied: reason=nda_not_accepted, share_grant_id=%s, user_id=%s",
                grant.share_grant_id,
                user_id,
            )
            raise AccessDeniedError("current NDA version not accepted")

    async def _log_access(
        self,
        grant: ShareGrant,
        action: AccessAction,
        client: ClientInfo,
        *,
        user_id: str | None = None,
        document_id: uuid.UUID | None = None,
    ) -> None:
        """Insert an access log entry; disclosure fails if this fails."""
        self._session.add(
            AccessLogEntry(
                share_grant_id=grant.share_grant_id,
                proof_pack_id=grant.proof_pack_id,
                user_id=user_id,
                document_id=document_id,
                action=action,
                ip_hash=self._hash_ip(client.ip_address),
                user_agent=client.user_agent[:500] if client.user_agent else None,
            )
        )
        try:
            await self._session.flush()
        except SQLAlchemyError as e:
            logger.error(
                "Access log write failed: share_grant_id=%s, action=%s, error=%s",
                grant.share_grant_id,
                action.value,
                e,
            )
            raise DependencyError("access_log", "Access could not be recorded") from e

    async def _load_pack(self, proof_pack_id: uuid.UUID) -> tuple[ProofPack, SMEProfile]:
        result = await self._session.execute(
            select(ProofPack, SMEProfile)
            .join(SMEProfile, SMEProfile.sme_id == ProofPack.sme_id)
            .where(ProofPack.proof_pack_id == proof_pack_id)
        )
        row = result.one_or_none()
        if row is None:
            raise NotFoundError("ProofPack", proof_pack_id)
        return row[0], row[1]

    # -------------------------------------------------------------------------
    # Viewer protocol
    # -------------------------------------------------------------------------

    async def get_info(self, token: str, client: ClientInfo | None = None) -> ShareSummary:
        """Phase 1: unauthenticated summary of the shared pack."""
        client = client or ClientInfo()
        grant = await self._resolve_grant(token)
        pack, sme = await self._load_pack(grant.proof_pack_id)

        result = await self._session.execute(
            select(func.count())
            .select_from(Document)
            .where(Document.proof_pack_id == pack.proof_pack_id)
        )
        document_count = result.scalar() or 0

        await self._log_access(grant, AccessAction.INFO_VIEWED, client)
        return ShareSummary(
            pack_title=pack.title,
            company_name=sme.company_name,
            industry=sme.industry,
            overall_score=pack.overall_score,
            document_count=document_count,
        )

    async def get_nda_status(self, token: str, user_id: str) -> NDAStatus:
        """Phase 2 read: has this viewer accepted the current NDA version?"""
        grant = await self._resolve_grant(token)
        acceptance = await self._current_acceptance(grant, user_id)
        return NDAStatus(
            accepted=acceptance is not None and acceptance.nda_version == grant.nda_version,
            nda_version=grant.nda_version,
        )

    async def accept_nda(
        self,
        token: str,
        user_id: str,
        accepted: bool,
        client: ClientInfo | None = None,
    ) -> NDAResult:
        """Phase 2 write: record acceptance of the current NDA version.

        Re-accepting the same version changes nothing. Accepting after the
        version was superseded updates the viewer's record.

        Raises:
            AccessDeniedError: If the token is not live.
            ValidationError: If `accepted` is not true.
        """
        if accepted is not True:
            raise ValidationError(
                "The NDA must be accepted to continue",
                errors={"accepted": "must be true"},
            )

        client = client or ClientInfo()
        grant = await self._resolve_grant(token)
        status = NDAStatus(accepted=True, nda_version=grant.nda_version)
        now = datetime.now(UTC)
        ip_hash = self._hash_ip(client.ip_address)

        existing = await self._current_acceptance(grant, user_id)
        if existing is not None and existing.nda_version == grant.nda_version:
            return NDAResult(status=status, newly_accepted=False)

        if existing is not None:
            existing.nda_version = grant.nda_version
            existing.accepted_at = now
            existing.ip_hash = ip_hash
            existing.user_agent = client.user_agent
            await self._session.flush()
        else:
            result = await self._session.execute(
                pg_insert(NDAAcceptance)
                .values(
                    share_grant_id=grant.share_grant_id,
                    user_id=user_id,
                    nda_version=grant.nda_version,
                    accepted_at=now,
                    ip_hash=ip_hash,
                    user_agent=client.user_agent,
                )
                .on_conflict_do_nothing(index_elements=["share_grant_id", "user_id"])
            )
            if result.rowcount == 0:
                # A concurrent request from the same viewer recorded it first
                return NDAResult(status=status, newly_accepted=False)

        await self._log_access(grant, AccessAction.NDA_ACCEPTED, client, user_id=user_id)
        pack, _ = await self._load_pack(grant.proof_pack_id)
        logger.info(
            "NDA accepted",
            extra={"share_grant_id": str(grant.share_grant_id), "nda_version": grant.nda_version},
        )

        event = NotificationEvent(
            kind=NotificationKind.NDA_ACCEPTED,
            recipient=pack.owner_user_id,
            params={
                "proof_pack_id": str(pack.proof_pack_id),
                "pack_title": pack.title,
                "viewer_id": user_id,
                "nda_version": grant.nda_version,
            },
        )
        return NDAResult(status=status, newly_accepted=True, events=[event])

    async def view_pack(
        self,
        token: str,
        user_id: str,
        client: ClientInfo | None = None,
    ) -> PackView:
        """Phase 3 read: the full pack for a viewer with a current NDA acceptance."""
        client = client or ClientInfo()
        grant = await self._resolve_grant(token)
        await self._require_nda(grant, user_id)

        pack, sme = await self._load_pack(grant.proof_pack_id)
        result = await self._session.execute(
            select(Document)
            .where(Document.proof_pack_id == pack.proof_pack_id)
            .order_by(Document.position, Document.uploaded_at)
        )
        documents = list(result.scalars().all())

        await self._log_access(grant, AccessAction.PACK_VIEWED, client, user_id=user_id)
        return PackView(pack=pack, health=pack_health(pack), documents=documents, sme=sme)

    async def request_download(
        self,
        token: str,
        user_id: str,
        document_id: uuid.UUID,
        client: ClientInfo | None = None,
    ) -> DownloadHandle:
        """Phase 3 download: a presigned URL for one document of the shared pack.

        Raises:
            AccessDeniedError: If the token is not live or the NDA is not accepted.
            NotFoundError: If the document is not part of the shared pack.
            DependencyError: If the object store or the access log fails.
        """
        client = client or ClientInfo()
        grant = await self._resolve_grant(token)
        await self._require_nda(grant, user_id)

        result = await self._session.execute(
            select(Document).where(
                Document.document_id == document_id,
                Document.proof_pack_id == grant.proof_pack_id,
            )
        )
        document = result.scalar_one_or_none()
        if document is None:
            raise NotFoundError("Document", document_id)

        if self._object_store is None:
            raise DependencyError("object_store", "Object store is not configured")

        s3 = self._settings.s3
        try:
            url = await asyncio.wait_for(
                asyncio.to_thread(
                    self._object_store.generate_presigned_url,
                    s3.bucket,
                    document.storage_key,
                    expires_in=s3.download_url_ttl_seconds,
                    download_name=document.file_name,
                ),
                timeout=s3.timeout,
            )
        except TimeoutError as e:
            logger.warning("Object store timed out signing %s", document.storage_key)
            raise DependencyError("object_store", "Object store timed out") from e
        except StorageError as e:
            logger.warning("Object store failed: %s", e.message)
            raise DependencyError("object_store") from e

        await self._log_access(
            grant,
            AccessAction.DOCUMENT_DOWNLOADED,
            client,
            user_id=user_id,
            document_id=document.document_id,
        )
        return DownloadHandle(
            document_id=document.document_id,
            file_name=document.file_name,
            url=url,
            expires_at=datetime.now(UTC) + timedelta(seconds=s3.download_url_ttl_seconds),
        )

    # -------------------------------------------------------------------------
    # Owner operations
    # -------------------------------------------------------------------------

    async def _get_owned_pack(self, proof_pack_id: uuid.UUID, actor: Actor) -> ProofPack:
        result = await self._session.execute(
            select(ProofPack)
            .where(ProofPack.proof_pack_id == proof_pack_id)
            .execution_options(populate_existing=True)
        )
        pack = result.scalar_one_or_none()
        if pack is None:
            raise NotFoundError("ProofPack", proof_pack_id)
        if not (actor.owns(pack.owner_user_id) or actor.is_admin):
            raise AccessDeniedError(f"user {actor.user_id} does not own pack {proof_pack_id}")
        return pack

    async def _get_grant(self, proof_pack_id: uuid.UUID, share_grant_id: uuid.UUID) -> ShareGrant:
        result = await self._session.execute(
            select(ShareGrant).where(
                ShareGrant.share_grant_id == share_grant_id,
                ShareGrant.proof_pack_id == proof_pack_id,
            )
        )
        grant = result.scalar_one_or_none()
        if grant is None:
            raise NotFoundError("ShareGrant", share_grant_id)
        return grant

    async def create_share_grant(
        self,
        proof_pack_id: uuid.UUID,
        actor: Actor,
        expires_in_days: int | None = None,
    ) -> ShareLink:
        """Create a share link for an approved, eligible pack.

        Args:
            proof_pack_id: Pack to share.
            actor: Pack owner or admin.
            expires_in_days: Link lifetime; None uses the configured default
                and 0 creates a link that does not expire.

        Raises:
            StateConflictError: If the pack is not approved or below the
                eligibility threshold.
            ValidationError: If expires_in_days is negative.
        """
        pack = await self._get_owned_pack(proof_pack_id, actor)
        if pack.status is not PackStatus.APPROVED or not is_eligible(pack.overall_score):
            raise StateConflictError(
                "Only approved packs meeting the eligibility threshold can be shared",
                current_state={
                    "proof_pack_id": str(proof_pack_id),
                    "status": pack.status.value,
                    "overall_score": pack.overall_score,
                    "required_score": ELIGIBILITY_THRESHOLD,
                },
            )

        if expires_in_days is None:
            expires_in_days = self._settings.disclosure.default_share_ttl_days
        if expires_in_days < 0:
            raise ValidationError(
                "Invalid expiry",
                errors={"expires_in_days": "must not be negative"},
            )

        now = datetime.now(UTC)
        token = secrets.token_urlsafe(TOKEN_BYTES)
        grant = ShareGrant(
            share_grant_id=uuid.uuid4(),
            token_hash=hash_token(token),
            proof_pack_id=proof_pack_id,
            created_by=actor.user_id,
            created_at=now,
            expires_at=now + timedelta(days=expires_in_days) if expires_in_days else None,
            revoked=False,
            nda_version=self._settings.disclosure.initial_nda_version,
        )
        self._session.add(grant)
        await self._session.flush()

        await AuditLogService(self._session).append(
            event_type=AuditEventType.SHARE_LINK_CREATED,
            actor_id=actor.user_id,
            resource_type="proof_pack",
            resource_id=str(proof_pack_id),
            details={
                "share_grant_id": str(grant.share_grant_id),
                "expires_at": grant.expires_at.isoformat() if grant.expires_at else None,
            },
        )
        logger.info(
            "Share link created",
            extra={"proof_pack_id": str(proof_pack_id), "share_grant_id": str(grant.share_grant_id)},
        )
        return ShareLink(grant=grant, token=token)

    async def revoke_share_grant(
        self,
        proof_pack_id: uuid.UUID,
        share_grant_id: uuid.UUID,
        actor: Actor,
    ) -> ShareGrant:
        """Revoke a share link. Revoking twice is a no-op."""
        await self._get_owned_pack(proof_pack_id, actor)
        grant = await self._get_grant(proof_pack_id, share_grant_id)
        if grant.revoked:
            return grant

        grant.revoked = True
        grant.revoked_at = datetime.now(UTC)
        grant.revoked_by = actor.user_id
        await self._session.flush()

        await AuditLogService(self._session).append(
            event_type=AuditEventType.SHARE_LINK_REVOKED,
            actor_id=actor.user_id,
            resource_type="proof_pack",
            resource_id=str(proof_pack_id),
            details={"share_grant_id": str(share_grant_id)},
        )
        logger.info("Share link revoked", extra={"share_grant_id": str(share_grant_id)})
        return grant

    async def publish_nda_version(
        self,
        proof_pack_id: uuid.UUID,
        share_grant_id: uuid.UUID,
        actor: Actor,
        nda_version: str,
    ) -> ShareGrant:
        """Attach a new NDA version; existing acceptances no longer grant access."""
        if not nda_version or not nda_version.strip():
            raise ValidationError("Invalid NDA version", errors={"nda_version": "must not be blank"})

        await self._get_owned_pack(proof_pack_id, actor)
        grant = await self._get_grant(proof_pack_id, share_grant_id)
        if grant.nda_version == nda_version.strip():
            return grant

        previous = grant.nda_version
        await self._session.execute(
            update(ShareGrant)
            .where(ShareGrant.share_grant_id == share_grant_id)
            .values(nda_version=nda_version.strip())
        )
        await self._session.refresh(grant)

        await AuditLogService(self._session).append(
            event_type=AuditEventType.NDA_VERSION_PUBLISHED,
            actor_id=actor.user_id,
            resource_type="share_grant",
            resource_id=str(share_grant_id),
            details={"previous_version": previous, "nda_version": grant.nda_version},
        )
        return grant

    async def list_share_grants(self, proof_pack_id: uuid.UUID, actor: Actor) -> list[ShareGrant]:
        await self._get_owned_pack(proof_pack_id, actor)
        result = await self._session.execute(
            select(ShareGrant)
            .where(ShareGrant.proof_pack_id == proof_pack_id)
            .order_by(ShareGrant.created_at.desc())
        )
        return list(result.scalars().all())

    async def list_access_log(
        self,
        proof_pack_id: uuid.UUID,
        actor: Actor,
        limit: int = ACCESS_LOG_PAGE_SIZE,
    ) -> list[AccessLogEntry]:
        """Most recent access log entries of a pack, newest first."""
        await self._get_owned_pack(proof_pack_id, actor)
        result = await self._session.execute(
            select(AccessLogEntry)
            .where(AccessLogEntry.proof_pack_id == proof_pack_id)
            .order_by(AccessLogEntry.entry_id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())
