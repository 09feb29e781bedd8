"""
Link registry: issues evaluation links and enforces the redemption state machine.

    ISSUED --(ttl elapses)-----------> EXPIRED   (derived at read time)
    ISSUED --(successful submission)--> USED

EXPIRED and USED are terminal.
"""
import copy
import hashlib
import json
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy.engine import Engine
from sqlmodel import select

from backend.persistence.database import get_db_session
from backend.persistence.models import Link, as_utc, utcnow
from shared.constants import REDEEM_REASONS, LinkStatus, RedeemStatus
from shared.formatting import flatten_header
from shared.schemas import LinkSummary, PrefillResponse, VerifyResponse

logger = logging.getLogger(__name__)

TOKEN_BYTES = 20
REF_FIELDS = ("convocatoria_id", "concurso_id", "plaza_id", "especialista_id", "aspirante_id")


def generate_token() -> str:
    return secrets.token_hex(TOKEN_BYTES)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


@dataclass
class RedeemResult:
    status: RedeemStatus
    link: Optional[Link] = None

    @property
    def ok(self) -> bool:
        return self.status == RedeemStatus.OK

    @property
    def reason(self) -> Optional[str]:
        code = REDEEM_REASONS.get(self.status)
        return code.value if code else None


class LinkRegistry:
    """
    Creates, looks up and mutates link records.

    ``redeem`` is the authorization gate for every side-effecting flow;
    ``mark_used`` must only run after the exam has been stored.
    """

    def __init__(
        self,
        engine: Optional[Engine] = None,
        clock: Callable[[], datetime] = utcnow
    ):
        self.engine = engine
        self.clock = clock

    # ==================== ISSUE ====================

    def issue(
        self,
        header: Dict[str, Any],
        ttl_hours: float,
        folios: Optional[List[str]] = None,
        refs: Optional[Dict[str, Optional[str]]] = None
    ) -> Tuple[Link, str]:
        """
        Create a link. Returns ``(link, token)``; the raw token is only
        ever handed out here.
        """
        if ttl_hours is None or ttl_hours < 0:
            raise ValueError("ttl_hours must be >= 0")

        token = generate_token()
        now = self.clock()
        folios = [str(f) for f in (folios or [])]
        snapshot = copy.deepcopy(header or {})
        refs = {k: v for k, v in (refs or {}).items() if k in REF_FIELDS}

        link = Link(
            token=token,
            token_hash=hash_token(token),
            status=LinkStatus.ISSUED.value,
            expires_at=now + timedelta(hours=ttl_hours),
            header=json.dumps(snapshot, default=str),
            is_batch=bool(folios),
            folios=json.dumps(folios) if folios else None,
            created_at=now,
            updated_at=now,
            **refs
        )

        session = get_db_session(self.engine)
        session.add(link)
        session.commit()
        session.refresh(link)
        session.close()

        logger.info(
            f"[LinkRegistry] Issued link {link.id} (batch={link.is_batch}, "
            f"folios={len(folios)}, expires={link.expires_at.isoformat()})"
        )
        return link, token

    # ==================== LOOKUP ====================

    def get_by_token(self, token: str) -> Optional[Link]:
        """Look up by hash, falling back to the raw token for pre-hash records."""
        if not token:
            return None
        session = get_db_session(self.engine)
        link = session.exec(
            select(Link).where(Link.token_hash == hash_token(token))
        ).first()
        if link is None:
            link = session.exec(select(Link).where(Link.token == token)).first()
        session.close()
        return link

    def is_expired(self, link: Link) -> bool:
        return self.clock() >= as_utc(link.expires_at)

    def list_links(self, status: Optional[str] = None, limit: int = 50) -> List[LinkSummary]:
        session = get_db_session(self.engine)
        query = select(Link)
        if status:
            query = query.where(Link.status == status)
        query = query.order_by(Link.created_at.desc()).limit(limit)
        results = session.exec(query).all()
        session.close()

        return [
            LinkSummary(
                token=link.token,
                status=self._effective_status(link),
                expires_at=as_utc(link.expires_at),
                used_at=as_utc(link.used_at),
                submissions_count=link.submissions_count,
                is_batch=link.is_batch,
                folios=link.get_folios(),
                header=link.get_header(),
                created_at=as_utc(link.created_at),
            )
            for link in results
        ]

    def _effective_status(self, link: Link) -> LinkStatus:
        if link.status == LinkStatus.ISSUED.value and self.is_expired(link):
            return LinkStatus.EXPIRED
        return LinkStatus(link.status)

    # ==================== REDEMPTION ====================

    def redeem(self, token: str) -> RedeemResult:
        """Check whether ``token`` may be redeemed right now."""
        link = self.get_by_token(token)
        if link is None:
            return RedeemResult(RedeemStatus.NOT_FOUND)

        if link.status == LinkStatus.USED.value:
            return RedeemResult(RedeemStatus.ALREADY_USED, link)

        if link.status == LinkStatus.EXPIRED.value:
            return RedeemResult(RedeemStatus.EXPIRED, link)

        if self.is_expired(link):
            self._persist_expired(link)
            return RedeemResult(RedeemStatus.EXPIRED, link)

        return RedeemResult(RedeemStatus.OK, link)

    def _persist_expired(self, link: Link) -> None:
        link.status = LinkStatus.EXPIRED.value
        link.updated_at = self.clock()
        session = get_db_session(self.engine)
        session.add(link)
        session.commit()
        session.refresh(link)
        session.close()
        logger.info(f"[LinkRegistry] Link {link.id} expired at {link.expires_at.isoformat()}")

    def mark_used(self, link: Link) -> Link:
        """ISSUED -> USED. Only called after the exam is durably stored."""
        now = self.clock()
        link.status = LinkStatus.USED.value
        link.used_at = now
        link.submissions_count = (link.submissions_count or 0) + 1
        link.updated_at = now

        session = get_db_session(self.engine)
        session.add(link)
        session.commit()
        session.refresh(link)
        session.close()

        logger.info(f"[LinkRegistry] Link {link.id} marked USED")
        return link

    # ==================== READ-ONLY VIEWS ====================

    def verify(self, token: str) -> VerifyResponse:
        """Read-only redemption check for the form; safe to call repeatedly."""
        result = self.redeem(token)
        if not result.ok:
            return VerifyResponse(valid=False, reason=result.reason)

        header = result.link.get_header()
        header["isBatch"] = result.link.is_batch
        header["folios"] = result.link.get_folios()
        return VerifyResponse(valid=True, header=header)

    def prefill(self, token: str) -> Optional[PrefillResponse]:
        """Flat header fields used to populate the form; None if unknown."""
        link = self.get_by_token(token)
        if link is None:
            return None
        flat = flatten_header(link.get_header())
        return PrefillResponse(
            **flat,
            is_batch=link.is_batch,
            folios=link.get_folios(),
        )
